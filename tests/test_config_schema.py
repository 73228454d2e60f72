"""Tests for config_schema.py -- Pydantic models for the YAML config.

Covers:
- zero-config defaults
- section validation (ranges, literals, frozen models)
- build_config() from raw dicts
- flatten_for_fallbacks() key space and None handling
"""

import pytest
from pydantic import ValidationError

from micropub_sync.config_schema import (
    MicropubConfig,
    SyncConfig,
    UnifiedConfig,
    WorkspaceConfig,
    build_config,
    flatten_for_fallbacks,
)


class TestDefaults:
    def test_zero_config(self):
        unified = UnifiedConfig()
        assert unified.micropub.url is None
        assert unified.micropub.max_parallel_requests == 4
        assert unified.workspace.content_dir == "content"
        assert unified.workspace.state_dir == ".micropub"
        assert unified.sync.conflict_policy == "stale-local-edit"
        assert unified.logging.level == "INFO"

    @pytest.mark.parametrize("raw", [{}, None])
    def test_build_empty(self, raw):
        assert build_config(raw) == UnifiedConfig()


class TestValidation:
    @pytest.mark.parametrize("value", [0, 33])
    def test_parallel_range(self, value):
        with pytest.raises(ValidationError):
            MicropubConfig(max_parallel_requests=value)

    def test_timeout_positive(self):
        with pytest.raises(ValidationError):
            MicropubConfig(timeout=0)

    def test_unknown_policy(self):
        with pytest.raises(ValidationError):
            SyncConfig(conflict_policy="last-writer-wins")

    def test_short_delimiter(self):
        with pytest.raises(ValidationError):
            WorkspaceConfig(frontmatter_delimiter="--")

    def test_frozen(self):
        config = MicropubConfig()
        with pytest.raises(ValidationError):
            config.url = "https://example.com"


class TestBuildConfig:
    def test_sections(self):
        unified = build_config(
            {
                "micropub": {
                    "url": "https://example.com/mp",
                    "discover_media_endpoint": True,
                },
                "workspace": {"root": "/srv/site", "uploads_dir": "img"},
                "sync": {"conflict_policy": "both-changed"},
                "logging": {"level": "DEBUG", "file": "/tmp/mp.log"},
            }
        )
        assert unified.micropub.url == "https://example.com/mp"
        assert unified.micropub.discover_media_endpoint is True
        assert unified.workspace.root == "/srv/site"
        assert unified.workspace.uploads_dir == "img"
        assert unified.sync.conflict_policy == "both-changed"
        assert unified.logging.file == "/tmp/mp.log"

    def test_invalid_section(self):
        with pytest.raises(ValidationError):
            build_config({"micropub": {"timeout": "soon"}})


class TestFlatten:
    def test_keys_match_load_config(self):
        flat = flatten_for_fallbacks(
            build_config(
                {
                    "micropub": {"url": "https://example.com/mp", "token": "t"},
                    "workspace": {"root": "/srv/site"},
                }
            )
        )
        assert flat["url"] == "https://example.com/mp"
        assert flat["token"] == "t"
        assert flat["root"] == "/srv/site"
        assert flat["content_dir"] == "content"
        assert flat["conflict_policy"] == "stale-local-edit"
        assert flat["max_parallel_requests"] == 4

    def test_none_values_dropped(self):
        flat = flatten_for_fallbacks(UnifiedConfig())
        assert "url" not in flat
        assert "token" not in flat
        assert "media_endpoint" not in flat
        assert "root" not in flat

    def test_logging_not_flattened(self):
        flat = flatten_for_fallbacks(
            build_config({"logging": {"level": "DEBUG"}})
        )
        assert "level" not in flat

"""Tests for micropub_sync.mcp.lifespan -- server startup/shutdown lifecycle.

Tests the server_lifespan() async context manager which:
- Loads config from env vars (with optional CLI overrides)
- Creates MicropubClient and verifies the token
- Discovers the media endpoint when asked to
- Fails fast on config errors or endpoint failures
- Prints status messages to stderr
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from micropub_sync.config import Config
from micropub_sync.config_schema import LoggingConfig
from micropub_sync.mcp.lifespan import server_lifespan

MEDIA = "https://example.com/media"

# -------------------------------------------------------------------------
# Helpers
# -------------------------------------------------------------------------


def _make_config(tmp_path, **overrides):
    """Create a valid Config rooted at tmp_path."""
    defaults = {
        "micropub_url": "https://example.com/micropub",
        "token": "test-token",
        "workspace": str(tmp_path),
        "max_parallel_requests": 5,
    }
    defaults.update(overrides)
    return Config(**defaults)


def _mock_client(service_config=None, error=None):
    client = MagicMock()
    client.verify = AsyncMock(
        return_value=service_config or {}, side_effect=error
    )
    return client


@pytest.fixture(autouse=True)
def _no_config_files():
    with (
        patch("micropub_sync.mcp.lifespan.load_dotenv"),
        patch("micropub_sync.mcp.lifespan.setup_logging"),
        patch(
            "micropub_sync.mcp.lifespan.discover_config_files",
            return_value=[],
        ),
    ):
        yield


# -------------------------------------------------------------------------
# server_lifespan() -- successful startup
# -------------------------------------------------------------------------


class TestServerLifespanSuccess:
    """Tests for the happy path through server_lifespan()."""

    async def test_successful_startup(self, tmp_path):
        config = _make_config(tmp_path, media_endpoint=MEDIA)
        mock_client = _mock_client()

        with (
            patch(
                "micropub_sync.mcp.lifespan.load_config",
                return_value=config,
            ),
            patch(
                "micropub_sync.mcp.lifespan.MicropubClient",
                return_value=mock_client,
            ),
        ):
            async with server_lifespan() as context:
                assert context.config is config
                assert context.client is mock_client
                assert context.workspace.root == tmp_path.resolve()
                assert context.uploader.media_endpoint == MEDIA

        mock_client.verify.assert_awaited_once()

    async def test_overrides_forwarded(self, tmp_path):
        config = _make_config(tmp_path)

        with (
            patch(
                "micropub_sync.mcp.lifespan.load_config",
                return_value=config,
            ) as mock_load,
            patch(
                "micropub_sync.mcp.lifespan.MicropubClient",
                return_value=_mock_client(),
            ),
        ):
            async with server_lifespan(
                {"url": "https://cli.example.com/mp", "insecure": True}
            ):
                pass

        kwargs = mock_load.call_args.kwargs
        assert kwargs["url"] == "https://cli.example.com/mp"
        assert kwargs["insecure"] is True
        assert kwargs["token"] is None
        assert kwargs["yaml_fallbacks"] is None

    async def test_media_endpoint_discovered(self, tmp_path):
        config = _make_config(tmp_path, discover_media_endpoint=True)

        with (
            patch(
                "micropub_sync.mcp.lifespan.load_config",
                return_value=config,
            ),
            patch(
                "micropub_sync.mcp.lifespan.MicropubClient",
                return_value=_mock_client({"media-endpoint": MEDIA}),
            ),
        ):
            async with server_lifespan() as context:
                assert context.config.media_endpoint == MEDIA
                assert context.uploader.media_endpoint == MEDIA

    async def test_discovery_off_by_default(self, tmp_path):
        config = _make_config(tmp_path)

        with (
            patch(
                "micropub_sync.mcp.lifespan.load_config",
                return_value=config,
            ),
            patch(
                "micropub_sync.mcp.lifespan.MicropubClient",
                return_value=_mock_client({"media-endpoint": MEDIA}),
            ),
        ):
            async with server_lifespan() as context:
                assert context.config.media_endpoint is None

    async def test_stderr_messages(self, tmp_path, capsys):
        with (
            patch(
                "micropub_sync.mcp.lifespan.load_config",
                return_value=_make_config(tmp_path),
            ),
            patch(
                "micropub_sync.mcp.lifespan.MicropubClient",
                return_value=_mock_client(),
            ),
        ):
            async with server_lifespan():
                pass

        err = capsys.readouterr().err
        assert "Micropub Sync Server starting..." in err
        assert "not configured (uploads disabled)" in err
        assert "Server ready" in err
        assert "shutting down" in err


# -------------------------------------------------------------------------
# server_lifespan() -- failures
# -------------------------------------------------------------------------


class TestServerLifespanFailures:
    async def test_config_error(self):
        with patch(
            "micropub_sync.mcp.lifespan.load_config",
            side_effect=ValueError("Micropub URL not found"),
        ):
            with pytest.raises(RuntimeError, match="Configuration error"):
                async with server_lifespan():
                    pass

    async def test_token_rejected(self, tmp_path):
        with (
            patch(
                "micropub_sync.mcp.lifespan.load_config",
                return_value=_make_config(tmp_path),
            ),
            patch(
                "micropub_sync.mcp.lifespan.MicropubClient",
                return_value=_mock_client(
                    error=PermissionError("rejected the token (HTTP 401)")
                ),
            ),
        ):
            with pytest.raises(
                RuntimeError, match="Micropub endpoint check failed"
            ):
                async with server_lifespan():
                    pass


# -------------------------------------------------------------------------
# server_lifespan() -- logging
# -------------------------------------------------------------------------


class TestLoggingReconfigured:
    async def _run(self, tmp_path, overrides=None, **config_kwargs):
        with (
            patch(
                "micropub_sync.mcp.lifespan.load_config",
                return_value=_make_config(tmp_path, **config_kwargs),
            ),
            patch(
                "micropub_sync.mcp.lifespan.MicropubClient",
                return_value=_mock_client(),
            ),
            patch("micropub_sync.mcp.lifespan.setup_logging") as mock_setup,
        ):
            async with server_lifespan(overrides):
                pass
        return mock_setup

    async def test_without_config_file(self, tmp_path):
        mock_setup = await self._run(tmp_path)

        mock_setup.assert_called_once_with(
            log_file=None, section=None, debug=False
        )

    async def test_config_file_section_and_debug(self, tmp_path):
        raw = {"logging": {"level": "ERROR", "file": str(tmp_path / "s.log")}}
        with (
            patch(
                "micropub_sync.mcp.lifespan.discover_config_files",
                return_value=[tmp_path / "config.yml"],
            ),
            patch(
                "micropub_sync.mcp.lifespan.load_hierarchical_config",
                return_value=raw,
            ),
        ):
            mock_setup = await self._run(
                tmp_path, {"log_file": "/var/log/cli.log"}, debug=True
            )

        kwargs = mock_setup.call_args.kwargs
        assert kwargs["log_file"] == "/var/log/cli.log"
        assert kwargs["section"] == LoggingConfig(
            level="ERROR", file=str(tmp_path / "s.log")
        )
        assert kwargs["debug"] is True

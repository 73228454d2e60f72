"""
Hierarchical configuration loader for micropub_sync.

Discovers config files by convention, expands ``${VAR}`` references and
resolves ``!include`` directives, then merges files so that the project
file wins over the global one.

Usage:
    from micropub_sync.config_loader import load_hierarchical_config

    raw = load_hierarchical_config()
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

PROJECT_CONFIG_DIR = ".micropub"
GLOBAL_CONFIG_DIR = Path("~/.config/micropub_sync")

# ---------------------------------------------------------------------------
# Env var expansion
# ---------------------------------------------------------------------------

# ${VAR} or ${VAR:-fallback}
_ENV_REF = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


def expand_env_refs(value: str) -> str:
    """Substitute ``${VAR}`` and ``${VAR:-fallback}`` with environment values.

    An unset or empty variable yields its fallback, or the empty string
    when no fallback is given.
    """

    def _sub(match: re.Match) -> str:
        current = os.environ.get(match.group(1))
        if current:
            return current
        return match.group(2) or ""

    return _ENV_REF.sub(_sub, value)


def _expand_tree(node: Any) -> Any:
    if isinstance(node, str):
        return expand_env_refs(node)
    if isinstance(node, dict):
        return {key: _expand_tree(val) for key, val in node.items()}
    if isinstance(node, list):
        return [_expand_tree(item) for item in node]
    return node


# ---------------------------------------------------------------------------
# YAML loader with !include
# ---------------------------------------------------------------------------


class IncludeLoader(yaml.SafeLoader):
    """SafeLoader subclass understanding ``!include relative/path.yml``.

    Registered on a subclass so the shared ``yaml.SafeLoader`` stays
    untouched. ``_chain`` holds the files currently being loaded.
    """

    _chain: list[Path]


def _construct_include(loader: IncludeLoader, node: yaml.ScalarNode) -> Any:
    target = Path(loader.construct_scalar(node)).expanduser()
    if not target.is_absolute():
        target = Path(loader.name).resolve().parent / target
    target = target.resolve()

    if target in loader._chain:
        cycle = " -> ".join(str(p) for p in [*loader._chain, target])
        raise ValueError(f"Circular include detected: {cycle}")
    if not target.exists():
        raise FileNotFoundError(
            f"Include file not found: {target} "
            f"(referenced from {Path(loader.name).resolve()})"
        )
    return read_yaml(target, _chain=[*loader._chain, target])


IncludeLoader.add_constructor("!include", _construct_include)


def read_yaml(path: Path, *, _chain: list[Path] | None = None) -> Any:
    """Parse one YAML file, following ``!include`` directives."""
    path = path.resolve()
    with open(path, "r", encoding="utf-8") as fh:
        loader = IncludeLoader(fh)
        loader._chain = _chain or [path]
        try:
            return loader.get_single_data()
        finally:
            loader.dispose()


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


def discover_config_files() -> list[Path]:
    """Return existing config files, highest precedence first.

    Candidates:
        1. ``MICROPUB_SYNC_CONFIG`` (explicit path)
        2. ``.micropub/config.yml`` in CWD
        3. ``.micropub/config.yaml`` in CWD
        4. ``~/.config/micropub_sync/config.yml``
    """
    candidates: list[Path] = []

    explicit = os.environ.get("MICROPUB_SYNC_CONFIG")
    if explicit:
        candidates.append(Path(explicit).expanduser().resolve())

    project = Path.cwd() / PROJECT_CONFIG_DIR
    candidates.append(project / "config.yml")
    candidates.append(project / "config.yaml")
    candidates.append(GLOBAL_CONFIG_DIR.expanduser() / "config.yml")

    return [p for p in candidates if p.exists()]


_STARTER_CONFIG = """\
# micropub-sync configuration
#
# Connection settings may also come from the environment:
#   MICROPUB_URL, MICROPUB_TOKEN, MICROPUB_MEDIA_ENDPOINT
#
# micropub:
#   url: https://micro.blog/micropub
#   token: ${MICROPUB_TOKEN}
#   media_endpoint: https://micro.blog/micropub/media
#   max_parallel_requests: 4
#
# workspace:
#   content_dir: content
#   uploads_dir: uploads
#
# sync:
#   conflict_policy: stale-local-edit
#
# logging:
#   level: INFO
#   file: null
"""


def ensure_config(target: Path | None = None) -> Path:
    """Return the active config file, writing a commented starter if none exists."""
    existing = discover_config_files()
    if existing:
        logger.debug("Config file already exists: %s", existing[0])
        return existing[0]

    config_path = target or Path.cwd() / PROJECT_CONFIG_DIR / "config.yml"
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(_STARTER_CONFIG, encoding="utf-8")
    logger.info("Created starter config: %s", config_path)
    return config_path


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------


def load_hierarchical_config() -> dict[str, Any]:
    """Load and merge every discovered config file.

    Files are applied from lowest to highest precedence; top-level sections
    of a later file replace those of an earlier one. Env references are
    expanded after merging. Returns ``{}`` when nothing is found.
    """
    merged: dict[str, Any] = {}
    for path in reversed(discover_config_files()):
        logger.debug("Loading config: %s", path)
        data = read_yaml(path)
        if isinstance(data, dict):
            merged.update(data)
        elif data is not None:
            logger.warning(
                "Config file %s has non-dict root (%s), skipping",
                path,
                type(data).__name__,
            )
    return _expand_tree(merged)

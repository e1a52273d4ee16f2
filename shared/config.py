# =============================================================================
# PROPOSAL RELAY - CONFIGURATION
# =============================================================================
#
# Two layers:
# - Secrets and endpoints come from the environment (optionally a .env file
#   at the project root, loaded with override=False).
# - Non-secret tuning comes from config/relay.yaml.
#
# Every required value is validated once, at startup. A missing value is a
# ConfigurationError; the relay never starts a tick with partial settings.
#
# =============================================================================

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from dotenv import load_dotenv

from .enums import ItemFailurePolicy, SourceFailurePolicy
from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).parent.parent
CONFIG_PATH = BASE_DIR / "config" / "relay.yaml"
ENV_FILE = BASE_DIR / ".env"

CONFIG_VERSION = 1

REQUIRED_ENV_VARS = (
    "TELEGRAM_BOT_TOKEN",
    "TELEGRAM_CHANNEL_ID",
    "GITHUB_TOKEN",
    "GITHUB_OWNER",
    "GITHUB_REPO",
    "ETH_RPC",
)

ENS_GOVERNOR_ADDRESS = "0x323A76393544d5ecca80cd6ef2A560C6a395b7E3"


@dataclass
class ChainSettings:
    rpc_url: str
    governor_address: str = ENS_GOVERNOR_ADDRESS
    window_blocks: int = 50


@dataclass
class SnapshotSettings:
    endpoint: str = "https://hub.snapshot.org/graphql"
    space: str = "ens.eth"
    page_size: int = 10


@dataclass
class TelegramSettings:
    bot_token: str
    channel_id: str


@dataclass
class DocsSettings:
    """
    GitHub target for proposal documents.

    owner/repo hold the proposal branches (usually a fork).
    upstream_owner/upstream_repo receive the pull request, unless dev_mode
    is on, in which case the pull request targets owner/repo itself.
    """
    token: str
    owner: str
    repo: str
    upstream_owner: str = "ensdomains"
    upstream_repo: str = "docs"
    base_branch: str = "master"
    epoch_year: int = 2025
    epoch_term_offset: int = 6
    dev_mode: bool = False


@dataclass
class RelaySettings:
    """All settings needed to wire one relay process."""
    chain: ChainSettings
    telegram: TelegramSettings
    docs: DocsSettings
    snapshot: SnapshotSettings = field(default_factory=SnapshotSettings)
    tally_slug: str = "ens"
    state_path: Path = BASE_DIR / "data" / "notified_proposals.json"
    item_failure_policy: ItemFailurePolicy = ItemFailurePolicy.ISOLATE
    source_failure_policy: SourceFailurePolicy = SourceFailurePolicy.ABORT_TICK
    interval_seconds: int = 60
    log_level: str = "INFO"
    log_dir: Optional[Path] = BASE_DIR / "logs"


def _is_truthy(raw: Optional[str]) -> bool:
    return (raw or "").strip().lower() in ("1", "true", "yes", "on")


def load_yaml_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load the non-secret tuning file.

    A missing file yields an empty dict (all defaults). A file that is not
    valid YAML, or whose version is unknown, is a ConfigurationError.
    """
    path = Path(config_path) if config_path else CONFIG_PATH
    if not path.exists():
        logger.info(f"Config file not found, using defaults: {path}")
        return {}

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}")

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config root must be a mapping: {path}")

    version = data.get("version", CONFIG_VERSION)
    if version != CONFIG_VERSION:
        raise ConfigurationError(
            f"Unsupported config version {version!r} in {path} "
            f"(expected {CONFIG_VERSION})"
        )

    return data


def _resolve(raw: Any) -> Path:
    """Relative paths are taken from the project root."""
    path = Path(raw)
    return path if path.is_absolute() else BASE_DIR / path


def _section(data: Mapping[str, Any], name: str) -> Dict[str, Any]:
    value = data.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigurationError(f"Config section '{name}' must be a mapping")
    return value


def _int(section: str, key: str, raw: Any) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Config value {section}.{key} must be an integer, got {raw!r}")


def _policy(enum_cls, raw: Any, default):
    if raw is None:
        return default
    try:
        return enum_cls(str(raw).lower())
    except ValueError:
        allowed = ", ".join(p.value for p in enum_cls)
        raise ConfigurationError(f"Unknown policy {raw!r} (allowed: {allowed})")


def load_settings(
    environ: Optional[Mapping[str, str]] = None,
    config_path: Optional[Path] = None,
    load_env_file: bool = True,
) -> RelaySettings:
    """
    Build RelaySettings from the environment and the YAML tuning file.

    Args:
        environ: Mapping to read variables from (defaults to os.environ)
        config_path: Path to relay.yaml (defaults to $RELAY_CONFIG or config/relay.yaml)
        load_env_file: Load the project .env into os.environ first

    Returns:
        Validated RelaySettings

    Raises:
        ConfigurationError: If any required value is missing or invalid
    """
    if load_env_file and ENV_FILE.exists():
        load_dotenv(ENV_FILE, override=False)

    env = os.environ if environ is None else environ

    missing: List[str] = [
        name for name in REQUIRED_ENV_VARS if not (env.get(name) or "").strip()
    ]
    if missing:
        raise ConfigurationError(
            f"Missing required settings: {', '.join(missing)}",
            missing=missing,
        )

    if config_path is None and env.get("RELAY_CONFIG"):
        config_path = Path(env["RELAY_CONFIG"])
    data = load_yaml_config(config_path)

    chain_cfg = _section(data, "chain")
    snapshot_cfg = _section(data, "snapshot")
    docs_cfg = _section(data, "docs")
    links_cfg = _section(data, "links")
    pipeline_cfg = _section(data, "pipeline")
    state_cfg = _section(data, "state")
    logging_cfg = _section(data, "logging")

    chain = ChainSettings(
        rpc_url=env["ETH_RPC"].strip(),
        governor_address=chain_cfg.get("governor_address", ENS_GOVERNOR_ADDRESS),
        window_blocks=_int("chain", "window_blocks", chain_cfg.get("window_blocks", 50)),
    )

    snapshot = SnapshotSettings(
        endpoint=snapshot_cfg.get("endpoint", SnapshotSettings.endpoint),
        space=snapshot_cfg.get("space", SnapshotSettings.space),
        page_size=_int(
            "snapshot", "page_size", snapshot_cfg.get("page_size", SnapshotSettings.page_size)
        ),
    )

    telegram = TelegramSettings(
        bot_token=env["TELEGRAM_BOT_TOKEN"].strip(),
        channel_id=env["TELEGRAM_CHANNEL_ID"].strip(),
    )

    docs = DocsSettings(
        token=env["GITHUB_TOKEN"].strip(),
        owner=env["GITHUB_OWNER"].strip(),
        repo=env["GITHUB_REPO"].strip(),
        upstream_owner=docs_cfg.get("upstream_owner", DocsSettings.upstream_owner),
        upstream_repo=docs_cfg.get("upstream_repo", DocsSettings.upstream_repo),
        base_branch=docs_cfg.get("base_branch", DocsSettings.base_branch),
        epoch_year=_int("docs", "epoch_year", docs_cfg.get("epoch_year", DocsSettings.epoch_year)),
        epoch_term_offset=_int(
            "docs",
            "epoch_term_offset",
            docs_cfg.get("epoch_term_offset", DocsSettings.epoch_term_offset),
        ),
        dev_mode=_is_truthy(env.get("DEV_MODE")),
    )

    state_path = env.get("RELAY_STATE_FILE") or state_cfg.get("path")
    log_dir = logging_cfg.get("dir", "logs")

    settings = RelaySettings(
        chain=chain,
        telegram=telegram,
        docs=docs,
        snapshot=snapshot,
        tally_slug=links_cfg.get("tally_slug", "ens"),
        state_path=_resolve(state_path) if state_path else RelaySettings.state_path,
        item_failure_policy=_policy(
            ItemFailurePolicy,
            pipeline_cfg.get("item_failure_policy"),
            ItemFailurePolicy.ISOLATE,
        ),
        source_failure_policy=_policy(
            SourceFailurePolicy,
            pipeline_cfg.get("source_failure_policy"),
            SourceFailurePolicy.ABORT_TICK,
        ),
        interval_seconds=_int(
            "pipeline", "interval_seconds", pipeline_cfg.get("interval_seconds", 60)
        ),
        log_level=str(logging_cfg.get("level", "INFO")).upper(),
        log_dir=_resolve(log_dir) if log_dir else None,
    )

    if settings.docs.dev_mode:
        logger.info("DEV_MODE on: pull requests target the branch repository")

    return settings

import json
import os
from pathlib import Path
from typing import Any

from flashnet_paths.core.constants.base import (
    DEFAULT_HTTP_TIMEOUT,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_QUOTE_TIMEOUT,
    DEFAULT_READ_RETRIES,
    DEFAULT_SESSION_TTL_S,
    DEFAULT_SLIPPAGE_BPS,
    DEFAULT_TRANSFER_TIMEOUT,
    SESSION_EXPIRY_SKEW_S,
)
from flashnet_paths.core.constants.networks import Network, network_config

_CONFIG_ENV_KEYS = ("FLASHNET_CONFIG_PATH", "FLASHNET_CONFIG")
_DEFAULT_CONFIG_FILENAME = "config.json"


def _find_project_root(start: Path) -> Path | None:
    cur = start.resolve()
    for parent in [cur, *cur.parents]:
        if (parent / "pyproject.toml").exists():
            return parent
    return None


def _project_root() -> Path | None:
    return _find_project_root(Path.cwd()) or _find_project_root(Path(__file__).parent)


def resolve_config_path(path: str | Path | None = None) -> Path:
    if path is not None:
        return Path(path).expanduser()

    env_path = next(
        (os.getenv(k, "").strip() for k in _CONFIG_ENV_KEYS if os.getenv(k)), ""
    )
    if env_path:
        p = Path(env_path).expanduser()
        if p.is_absolute():
            return p
        root = _project_root()
        return (root / p) if root else p

    root = _project_root()
    return (root / _DEFAULT_CONFIG_FILENAME) if root else Path(_DEFAULT_CONFIG_FILENAME)


def load_config_json(
    path: str | Path | None = None, *, require_exists: bool = False
) -> dict[str, Any]:
    cfg_path = resolve_config_path(path)
    if not cfg_path.exists():
        if require_exists:
            raise FileNotFoundError(f"Config file not found: {cfg_path}")
        return {}
    try:
        return json.loads(cfg_path.read_text())
    except json.JSONDecodeError:
        return {}


CONFIG: dict[str, Any] = load_config_json()


def set_config(config: dict[str, Any]) -> None:
    """Replace the global CONFIG dict in-place.

    This allows code that imported CONFIG at module import time to see updates.
    """
    CONFIG.clear()
    CONFIG.update(config)


def load_config(
    path: str | Path | None = None, *, require_exists: bool = False
) -> None:
    """Load config from disk into the global CONFIG dict."""
    set_config(load_config_json(path, require_exists=require_exists))


def _section(name: str) -> dict[str, Any]:
    value = CONFIG.get(name)
    return value if isinstance(value, dict) else {}


def _float_setting(section: str, key: str, default: float) -> float:
    raw = _section(section).get(key)
    if raw is None:
        return default
    try:
        return float(raw)
    except (TypeError, ValueError):
        return default


def get_network() -> Network:
    raw = _section("system").get("network") or os.environ.get("FLASHNET_NETWORK")
    if raw:
        return Network(str(raw).strip().upper())
    return Network.MAINNET


def get_gateway_url(network: str | Network | None = None) -> str:
    system = _section("system")
    override = system.get("gateway_url")
    if override and network is None:
        return str(override).strip().rstrip("/")
    return network_config(network or get_network()).gateway_url


def get_http_timeout() -> float:
    return _float_setting("system", "http_timeout", DEFAULT_HTTP_TIMEOUT)


def get_read_retries() -> int:
    return int(_float_setting("system", "read_retries", DEFAULT_READ_RETRIES))


def get_session_expiry_skew() -> float:
    return _float_setting("auth", "expiry_skew_s", SESSION_EXPIRY_SKEW_S)


def get_session_default_ttl() -> float:
    return _float_setting("auth", "default_ttl_s", DEFAULT_SESSION_TTL_S)


def get_quote_timeout() -> float:
    return _float_setting("quotes", "timeout_s", DEFAULT_QUOTE_TIMEOUT)


def get_default_slippage_bps() -> int:
    return int(_float_setting("quotes", "slippage_bps", DEFAULT_SLIPPAGE_BPS))


def get_transfer_timeout() -> float:
    return _float_setting("lightning", "transfer_timeout_s", DEFAULT_TRANSFER_TIMEOUT)


def get_poll_interval() -> float:
    return _float_setting("lightning", "poll_interval_s", DEFAULT_POLL_INTERVAL)

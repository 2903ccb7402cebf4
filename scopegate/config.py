import os
from pathlib import Path

from dotenv import load_dotenv

# Load params from .env file
load_dotenv()


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = str(os.getenv(name, "true" if default else "false")).strip().lower()
    return raw in {"1", "true", "yes", "on"}


def scopegate_home() -> Path:
    raw = str(os.getenv("SCOPEGATE_HOME", "") or "").strip()
    if raw:
        return Path(raw).expanduser()
    return Path.home() / ".scopegate"


def settings_path() -> Path:
    raw = str(os.getenv("SCOPEGATE_SETTINGS_PATH", "") or "").strip()
    if raw:
        return Path(raw).expanduser()
    return scopegate_home() / "settings.yaml"


def credentials_path() -> Path:
    raw = str(os.getenv("SCOPEGATE_CREDENTIALS_PATH", "") or "").strip()
    if raw:
        return Path(raw).expanduser()
    return scopegate_home() / "config.json"


def org_alias_override():
    """Alias forced through SCOPEGATE_ORG, if any."""
    raw = str(os.getenv("SCOPEGATE_ORG", "") or "").strip()
    return raw or None


def probe_timeout_seconds() -> float:
    return max(0.1, _env_float("SCOPEGATE_PROBE_TIMEOUT_SECONDS", 10.0))


def jira_timeout_seconds() -> float:
    return max(0.1, _env_float("SCOPEGATE_JIRA_TIMEOUT_SECONDS", 5.0))


def batch_max_workers() -> int:
    return max(1, _env_int("SCOPEGATE_BATCH_MAX_WORKERS", 4))


def is_json_logging_enabled() -> bool:
    """
    Controls whether the CLI configures line-oriented JSON logging on stderr.
    Defaults to disabled so interactive output stays readable.
    """
    return _env_bool("SCOPEGATE_LOG_JSON", False)

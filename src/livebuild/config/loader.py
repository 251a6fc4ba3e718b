# src/livebuild/config/loader.py
"""
Config loader.

Resolution order for each setting (later wins):

1. built-in defaults
2. the YAML settings file: LIVEBUILD_SETTINGS_FILE if set, otherwise the
   `settings.yaml` that ships next to this module
3. environment variables (a `.env` file in the working directory is loaded
   first via python-dotenv and never overrides real env vars)

Credentials only come from the environment. Anything missing or malformed is
collected and raised together as a ConfigError so the process refuses to
start.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml
from dotenv import load_dotenv


class ConfigError(Exception):
    """Raised at startup when the configuration is unusable."""

    def __init__(self, problems: List[str]) -> None:
        self.problems = list(problems)
        super().__init__("invalid configuration: " + "; ".join(self.problems))


# ---------------------------------------------------------------------------
# settings object
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TwitterCredentials:
    api_key: str
    api_secret: str
    access_token: str
    access_secret: str


@dataclass(frozen=True)
class Settings:
    poll_interval_seconds: int = 30
    context_window_minutes: int = 15
    snapshot_interval_seconds: int = 300
    prune_interval_seconds: int = 60
    tweet_max_per_hour: int = 3
    tweet_max_per_day: int = 30
    tweet_min_interval_minutes: int = 10
    tweet_dry_run: bool = False
    tweet_as_thread: bool = True
    tweet_attach_screenshots: bool = False
    watched_repos: Tuple[str, ...] = ()
    claude_history_path: str = field(default_factory=lambda: str(Path.home() / ".claude"))
    screenpipe_api_url: str = "http://localhost:3030"
    data_dir: Optional[str] = None
    decider_lm: str = "anthropic/claude-haiku-4-5-20251001"
    generator_lm: str = "anthropic/claude-sonnet-4-5-20250929"
    anthropic_api_key: str = ""
    twitter: Optional[TwitterCredentials] = None


# name in settings.yaml -> env var
_ENV_KEYS: Dict[str, str] = {
    "poll_interval_seconds": "POLL_INTERVAL_SECONDS",
    "context_window_minutes": "CONTEXT_WINDOW_MINUTES",
    "snapshot_interval_seconds": "SNAPSHOT_INTERVAL_SECONDS",
    "prune_interval_seconds": "PRUNE_INTERVAL_SECONDS",
    "tweet_max_per_hour": "TWEET_MAX_PER_HOUR",
    "tweet_max_per_day": "TWEET_MAX_PER_DAY",
    "tweet_min_interval_minutes": "TWEET_MIN_INTERVAL_MINUTES",
    "tweet_dry_run": "TWEET_DRY_RUN",
    "tweet_as_thread": "TWEET_AS_THREAD",
    "tweet_attach_screenshots": "TWEET_ATTACH_SCREENSHOTS",
    "watched_repos": "WATCHED_REPOS",
    "claude_history_path": "CLAUDE_HISTORY_PATH",
    "screenpipe_api_url": "SCREENPIPE_API_URL",
    "data_dir": "LIVEBUILD_DATA_DIR",
    "decider_lm": "LIVEBUILD_DECIDER_LM",
    "generator_lm": "LIVEBUILD_GENERATOR_LM",
}

_POSITIVE_INTS = (
    "poll_interval_seconds",
    "context_window_minutes",
    "snapshot_interval_seconds",
    "prune_interval_seconds",
)
_NON_NEGATIVE_INTS = (
    "tweet_max_per_hour",
    "tweet_max_per_day",
    "tweet_min_interval_minutes",
)
_BOOLS = ("tweet_dry_run", "tweet_as_thread", "tweet_attach_screenshots")

_TWITTER_ENV = (
    "TWITTER_API_KEY",
    "TWITTER_API_SECRET",
    "TWITTER_ACCESS_TOKEN",
    "TWITTER_ACCESS_SECRET",
)


# ---------------------------------------------------------------------------
# path resolution utilities
# ---------------------------------------------------------------------------

def _package_config_dir() -> Path:
    return Path(__file__).resolve().parent


def _default_settings_path() -> Path:
    return _package_config_dir() / "settings.yaml"


def load_settings_yaml(path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load the YAML settings file. A missing default file is fine (empty dict);
    a missing file that was asked for explicitly is an error.
    """
    explicit = path is not None
    path = path or _default_settings_path()
    if not path.exists():
        if explicit:
            raise ConfigError([f"settings file not found: {path}"])
        return {}
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigError([f"settings file must be a mapping: {path}"])
    return data


# ---------------------------------------------------------------------------
# value coercion
# ---------------------------------------------------------------------------

def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def _parse_list(value: Any) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, (list, tuple)):
        items = [str(v).strip() for v in value]
    else:
        items = [part.strip() for part in str(value).split(",")]
    return tuple(os.path.expanduser(i) for i in items if i)


# ---------------------------------------------------------------------------
# public loader
# ---------------------------------------------------------------------------

def load_settings(
    env: Optional[Mapping[str, str]] = None,
    *,
    settings_file: Optional[Path] = None,
    dry_run: Optional[bool] = None,
    require_credentials: bool = True,
) -> Settings:
    """
    Build validated Settings. `env` defaults to os.environ (after loading
    `.env`); `dry_run` lets the CLI force dry-run mode. With
    `require_credentials=False` missing keys are not an error (used by
    `--status`, which never calls out).
    """
    if env is None:
        load_dotenv()
        env = os.environ

    if settings_file is None and env.get("LIVEBUILD_SETTINGS_FILE"):
        settings_file = Path(env["LIVEBUILD_SETTINGS_FILE"]).expanduser()

    raw: Dict[str, Any] = dict(load_settings_yaml(settings_file))
    for name, env_key in _ENV_KEYS.items():
        value = env.get(env_key)
        if value not in (None, ""):
            raw[name] = value

    problems: List[str] = []
    values: Dict[str, Any] = {}

    for name in _POSITIVE_INTS + _NON_NEGATIVE_INTS:
        if name not in raw:
            continue
        try:
            number = int(raw[name])
        except (TypeError, ValueError):
            problems.append(f"{_ENV_KEYS[name]} must be an integer, got {raw[name]!r}")
            continue
        if name in _POSITIVE_INTS and number <= 0:
            problems.append(f"{_ENV_KEYS[name]} must be positive, got {number}")
        elif number < 0:
            problems.append(f"{_ENV_KEYS[name]} must not be negative, got {number}")
        values[name] = number

    for name in _BOOLS:
        if name in raw:
            values[name] = _parse_bool(raw[name])
    if dry_run is not None:
        values["tweet_dry_run"] = dry_run

    if "watched_repos" in raw:
        values["watched_repos"] = _parse_list(raw["watched_repos"])
    for name in ("claude_history_path", "data_dir"):
        if raw.get(name):
            values[name] = os.path.expanduser(str(raw[name]))
    for name in ("screenpipe_api_url", "decider_lm", "generator_lm"):
        if raw.get(name):
            values[name] = str(raw[name])
    if "screenpipe_api_url" in values:
        values["screenpipe_api_url"] = values["screenpipe_api_url"].rstrip("/")

    # credentials: environment only
    anthropic_key = env.get("ANTHROPIC_API_KEY", "")
    if not anthropic_key and require_credentials:
        problems.append("missing required env var: ANTHROPIC_API_KEY")
    values["anthropic_api_key"] = anthropic_key

    dry = values.get("tweet_dry_run", False)
    twitter_values = [env.get(k, "") for k in _TWITTER_ENV]
    if all(twitter_values):
        values["twitter"] = TwitterCredentials(*twitter_values)
    elif not dry and require_credentials:
        for key, value in zip(_TWITTER_ENV, twitter_values):
            if not value:
                problems.append(f"missing required env var: {key}")

    if problems:
        raise ConfigError(problems)
    return Settings(**values)


__all__ = [
    "ConfigError",
    "Settings",
    "TwitterCredentials",
    "load_settings",
    "load_settings_yaml",
]

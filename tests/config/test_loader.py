# tests/config/test_loader.py
from __future__ import annotations

import pytest

from livebuild.config.loader import ConfigError, Settings, load_settings, load_settings_yaml

CREDS = {
    "ANTHROPIC_API_KEY": "sk-ant",
    "TWITTER_API_KEY": "a",
    "TWITTER_API_SECRET": "b",
    "TWITTER_ACCESS_TOKEN": "c",
    "TWITTER_ACCESS_SECRET": "d",
}


def test_defaults_from_packaged_yaml():
    settings = load_settings(dict(CREDS))
    assert isinstance(settings, Settings)
    assert settings.context_window_minutes == 15
    assert settings.tweet_max_per_hour == 3
    assert settings.tweet_max_per_day == 30
    assert settings.tweet_min_interval_minutes == 10
    assert settings.snapshot_interval_seconds == 300
    assert settings.tweet_as_thread is True
    assert settings.tweet_dry_run is False
    assert settings.watched_repos == ()
    assert settings.twitter.api_key == "a"


def test_env_overrides_yaml():
    env = dict(
        CREDS,
        TWEET_MAX_PER_HOUR="5",
        TWEET_AS_THREAD="false",
        WATCHED_REPOS="/code/a, /code/b,",
        SCREENPIPE_API_URL="http://127.0.0.1:3030/",
    )
    settings = load_settings(env)
    assert settings.tweet_max_per_hour == 5
    assert settings.tweet_as_thread is False
    assert settings.watched_repos == ("/code/a", "/code/b")
    assert settings.screenpipe_api_url == "http://127.0.0.1:3030"


def test_settings_file_from_env(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text("context_window_minutes: 30\nwatched_repos:\n  - /code/x\n")
    settings = load_settings(dict(CREDS, LIVEBUILD_SETTINGS_FILE=str(path)))
    assert settings.context_window_minutes == 30
    assert settings.watched_repos == ("/code/x",)


def test_missing_explicit_settings_file(tmp_path):
    with pytest.raises(ConfigError):
        load_settings_yaml(tmp_path / "nope.yaml")


def test_all_problems_reported_together():
    env = {"TWEET_MAX_PER_HOUR": "lots", "POLL_INTERVAL_SECONDS": "0"}
    with pytest.raises(ConfigError) as info:
        load_settings(env)
    problems = " | ".join(info.value.problems)
    assert "TWEET_MAX_PER_HOUR must be an integer" in problems
    assert "POLL_INTERVAL_SECONDS must be positive" in problems
    assert "ANTHROPIC_API_KEY" in problems
    assert "TWITTER_ACCESS_SECRET" in problems


def test_dry_run_does_not_need_twitter_credentials():
    settings = load_settings({"ANTHROPIC_API_KEY": "sk-ant", "TWEET_DRY_RUN": "true"})
    assert settings.tweet_dry_run is True
    assert settings.twitter is None


def test_cli_dry_run_flag_wins():
    settings = load_settings({"ANTHROPIC_API_KEY": "sk-ant", "TWEET_DRY_RUN": "false"}, dry_run=True)
    assert settings.tweet_dry_run is True


def test_status_mode_needs_no_credentials():
    settings = load_settings({}, require_credentials=False)
    assert settings.anthropic_api_key == ""

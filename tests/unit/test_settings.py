"""
Configuration Tests
===================

Defaults, source precedence and rule validation.
"""

import json

import pytest
from pydantic import ValidationError

from feedfilter.config.settings import (
    FeedFilterSettings,
    FeedSettings,
    LogLevel,
    get_settings,
    load_settings,
    translate_legacy_layout,
)
from feedfilter.utils.exceptions import ConfigurationError, ErrorCode


@pytest.fixture
def config_file(tmp_path):
    def _write(data):
        path = tmp_path / "appsettings.json"
        path.write_text(json.dumps(data), encoding="utf-8")
        return str(path)

    return _write


class TestDefaults:
    """Field defaults."""

    def test_defaults(self):
        settings = FeedFilterSettings()

        assert settings.feed.input_source is None
        assert settings.feed.tags_to_remove == []
        assert settings.feed.cleanup_tags is False
        assert settings.logger.log_directory == "logs"
        assert settings.logger.max_file_size_bytes == 100 * 1024
        assert settings.logger.buffer_size == 50
        assert settings.monitor.max_retries == 3
        assert settings.monitor.retry_delay_seconds == 5.0
        assert settings.monitor.poll_interval_seconds == 300.0
        assert settings.server.port == 5000
        assert settings.logging.level == LogLevel.INFO

    def test_default_cleanup_rules(self):
        rules = FeedSettings().all_cleanup_rules()

        assert [(r.tag_name, r.cleanup_pattern) for r in rules] == [
            ("title", r"\sS\d{2}E\d{2}.*"),
            ("description", r"\s\d{3,4}p.*"),
        ]

    def test_legacy_cleanup_rules_run_last(self):
        feed = FeedSettings(
            tag_cleanup_settings=[{"tag_name": "title", "cleanup_pattern": "a"}],
            tag_cleanup=[{"tag_name": "title", "cleanup_pattern": "b"}],
        )

        assert [r.cleanup_pattern for r in feed.all_cleanup_rules()] == ["a", "b"]

    def test_blank_tags_are_dropped(self):
        feed = FeedSettings(tags_to_remove=["guid", " ", "", " media:content "])

        assert feed.tags_to_remove == ["guid", "media:content"]

    def test_debug_forces_debug_level(self):
        assert FeedFilterSettings(debug=True).get_effective_log_level() == "DEBUG"
        assert FeedFilterSettings().get_effective_log_level() == "INFO"


class TestSources:
    """Environment, JSON file and override precedence."""

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("FEEDFILTER_SERVER__PORT", "8080")
        monkeypatch.setenv("FEEDFILTER_FEED__TAGS_TO_REMOVE", '["guid", "link"]')
        monkeypatch.setenv("FEEDFILTER_FEED__CLEANUP_TAGS", "true")

        settings = FeedFilterSettings()

        assert settings.server.port == 8080
        assert settings.feed.tags_to_remove == ["guid", "link"]
        assert settings.feed.cleanup_tags is True

    def test_json_file(self, config_file):
        path = config_file({
            "feed": {
                "input_source": "https://example.com/rss",
                "tags_to_remove": ["guid"],
                "tag_split": [{
                    "tag_name": "title",
                    "split_pattern": r"(.+) S(\d{2})",
                    "new_tags": {"title": "$1", "season": "$2"},
                }],
            },
            "monitor": {"poll_interval_seconds": 60},
        })

        settings = load_settings(path)

        assert settings.feed.input_source == "https://example.com/rss"
        assert settings.feed.tags_to_remove == ["guid"]
        assert list(settings.feed.tag_split[0].new_tags) == ["title", "season"]
        assert settings.monitor.poll_interval_seconds == 60.0

    def test_legacy_appsettings_layout(self, config_file, tmp_path):
        path = config_file({
            "Logging": {"LogLevel": {"Default": "Information"}},
            "RSSFilter": {
                "InputSource": "https://example.com/rss",
                "TagsToRemove": ["guid", "media:content"],
                "CleanupTags": True,
                "TagSplit": [{
                    "TagName": "title",
                    "SplitPattern": r"(.+) S(\d{2})",
                    "NewTags": {"Title": "$1", "seasonNumber": "$2"},
                }],
                "TagCleanup": [{"TagName": "description", "CleanupPattern": "x"}],
            },
            "Logger": {
                "LogDirectory": str(tmp_path / "legacy-logs"),
                "MaxFileSizeBytes": 2048,
                "BufferSize": 10,
            },
        })

        settings = load_settings(path)

        feed = settings.feed
        assert feed.input_source == "https://example.com/rss"
        assert feed.tags_to_remove == ["guid", "media:content"]
        assert feed.cleanup_tags is True
        assert feed.tag_split[0].tag_name == "title"
        assert feed.tag_split[0].split_pattern == r"(.+) S(\d{2})"
        # Tag names in new_tags are data and keep their case
        assert feed.tag_split[0].new_tags == {"Title": "$1", "seasonNumber": "$2"}
        assert feed.tag_cleanup[0].cleanup_pattern == "x"
        assert settings.logger.log_directory == str(tmp_path / "legacy-logs")
        assert settings.logger.max_file_size_bytes == 2048
        assert settings.logger.buffer_size == 10

    def test_native_sections_win_over_legacy(self):
        translated = translate_legacy_layout({
            "RSSFilter": {"InputSource": "http://legacy.test/rss", "CleanupTags": True},
            "feed": {"input_source": "http://native.test/rss"},
            "server": {"port": 7000},
        })

        assert translated == {
            "feed": {"input_source": "http://native.test/rss", "cleanup_tags": True},
            "server": {"port": 7000},
        }

    def test_environment_beats_json_file(self, config_file, monkeypatch):
        path = config_file({"server": {"port": 7000}})
        monkeypatch.setenv("FEEDFILTER_SERVER__PORT", "9000")

        assert load_settings(path).server.port == 9000

    def test_overrides_beat_everything(self, config_file, monkeypatch):
        path = config_file({"server": {"port": 7000}})
        monkeypatch.setenv("FEEDFILTER_SERVER__PORT", "9000")

        settings = load_settings(path, overrides={"server": {"port": 6000}})

        assert settings.server.port == 6000

    def test_missing_config_file(self, tmp_path):
        with pytest.raises(ConfigurationError) as exc_info:
            load_settings(str(tmp_path / "missing.json"))

        assert exc_info.value.error_code == ErrorCode.CONFIG_MISSING

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()
        assert get_settings(reload=True) is not None


class TestValidation:
    """Field and rule validation."""

    def test_non_http_input_source_rejected(self):
        with pytest.raises(ValidationError):
            FeedFilterSettings(feed={"input_source": "ftp://example.com/rss"})

    def test_invalid_overrides_become_configuration_error(self):
        with pytest.raises(ConfigurationError) as exc_info:
            load_settings(overrides={"feed": {"input_source": "not a url"}})

        assert exc_info.value.error_code == ErrorCode.CONFIG_INVALID

    def test_rule_errors(self):
        settings = FeedFilterSettings(feed={
            "tag_split": [
                {"tag_name": "title", "split_pattern": "(one)", "new_tags": {"a": "$1"}},
                {"tag_name": "title", "split_pattern": "(bad", "new_tags": {"a": "$1"}},
            ],
            "tag_cleanup": [{"tag_name": "description", "cleanup_pattern": "[bad"}],
        })

        errors = settings.rule_errors()

        assert len(errors) == 3
        assert "needs at least 2 capture groups" in errors[0]
        assert errors[1].startswith("Invalid split pattern for 'title'")
        assert errors[2].startswith("Invalid cleanup pattern for 'description'")

    def test_validate_configuration_requires_input_source(self, tmp_path):
        settings = FeedFilterSettings(logger={"log_directory": str(tmp_path / "logs")})

        with pytest.raises(ConfigurationError, match="feed.input_source is required"):
            settings.validate_configuration()

    def test_validate_configuration_passes(self, tmp_path):
        settings = FeedFilterSettings(
            feed={"input_source": "http://example.com/rss"},
            logger={"log_directory": str(tmp_path / "logs")},
        )

        settings.validate_configuration()

        assert (tmp_path / "logs").is_dir()

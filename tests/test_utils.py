import logging
from unittest import mock

import pytest

from hearing.core.config import Settings
from hearing.core.safety import clamp_reply_text, sanitize_user_text, strip_wrapping_quotes
from hearing.core.slots import ALL_SLOTS
from hearing.utils import Stopwatch, log_duration
from hearing.utils.logging import parse_level_overrides


class TestLevelOverrides:
    def test_parse(self):
        assert parse_level_overrides("hearing.core.dialogue=debug, urllib3=INFO") == {
            "hearing.core.dialogue": "DEBUG",
            "urllib3": "INFO",
        }

    @pytest.mark.parametrize("raw", [None, "", "nonsense", "=DEBUG", "x=LOUD"])
    def test_bad_entries_are_skipped(self, raw):
        assert parse_level_overrides(raw) == {}


class TestTimers:
    def test_stopwatch_records_elapsed(self):
        logger = mock.Mock(spec=logging.Logger)
        with mock.patch("hearing.utils.timers.time.perf_counter", side_effect=[1.0, 1.25]):
            with Stopwatch("tier1", logger, logging.DEBUG) as sw:
                pass
        assert sw.elapsed == pytest.approx(0.25)
        logger.log.assert_called_once()
        logger.warning.assert_not_called()

    def test_slow_call_warns(self):
        logger = mock.Mock(spec=logging.Logger)
        with mock.patch("hearing.utils.timers.time.perf_counter", side_effect=[0.0, 12.0]):
            with Stopwatch("tier2", logger, slow_s=5.0):
                pass
        logger.warning.assert_called_once()

    def test_log_duration_reraises_and_logs_failure(self):
        logger = mock.Mock(spec=logging.Logger)

        @log_duration("extract", logger)
        def boom():
            raise RuntimeError("down")

        with pytest.raises(RuntimeError):
            boom()
        args = logger.log.call_args.args
        assert args[-1] == "failed"
        assert boom.__name__ == "boom"


class TestSafety:
    def test_sanitize(self):
        result = sanitize_user_text("  Visited\x00  Acme\n\ntoday ", max_chars=100)
        assert result.sanitized == "Visited Acme today"
        assert not result.truncated and not result.too_short

    def test_sanitize_truncates(self):
        result = sanitize_user_text("x" * 50, max_chars=10)
        assert result.sanitized == "x" * 10
        assert result.truncated

    def test_quotes_and_clamp(self):
        assert strip_wrapping_quotes('"「Understood.」"') == "Understood."
        assert clamp_reply_text("abcdefghij", 8) == "abcde..."
        assert clamp_reply_text("short", 8) == "short"


class TestSettings:
    def test_fields(self):
        fields = Settings.model_fields
        assert "store_prune_interval_s" in fields
        assert "language" not in fields
        assert Settings().policy_hard_cap_turns == len(ALL_SLOTS) + 1

"""Unit tests for femtologging integration helpers.

Run with:
    pytest tests/unit/test_logging.py
"""

from __future__ import annotations

import pytest

from solforge.logging import (
    format_log_message,
    log_debug,
    log_exception,
    log_warning,
    normalize_log_level,
    truncate_payload,
)


class _FakeLogger:
    """Collects log calls for assertions."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str, object | None, bool]] = []

    def log(
        self,
        level: str,
        message: str,
        /,
        *,
        exc_info: object | None = None,
        stack_info: bool = False,
    ) -> str:
        self.calls.append((level, message, exc_info, stack_info))
        return message


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("warning", ("WARNING", False)),
        (" debug ", ("DEBUG", False)),
        (None, ("INFO", True)),
        ("", ("INFO", True)),
        ("loud", ("INFO", True)),
    ],
)
def test_normalize_log_level(raw: str | None, expected: tuple[str, bool]) -> None:
    """Known levels normalise; anything else falls back to INFO."""
    assert normalize_log_level(raw) == expected


def test_format_log_message_uses_percent_formatting() -> None:
    """Percent formatting produces the expected message."""
    assert format_log_message("paid %s (%d)", "b-1", 3) == "paid b-1 (3)"


def test_level_helpers_pass_level_and_message() -> None:
    """Helpers format eagerly and forward the level."""
    logger = _FakeLogger()

    log_debug(logger, "a=%s", 1)
    log_warning(logger, "b=%s", 2)

    assert logger.calls == [
        ("DEBUG", "a=1", None, False),
        ("WARNING", "b=2", None, False),
    ]


def test_log_exception_attaches_exc_info() -> None:
    """The exception is forwarded as exc_info at ERROR."""
    logger = _FakeLogger()
    exc = RuntimeError("boom")

    log_exception(logger, "failed", exc)

    assert logger.calls == [("ERROR", "failed", exc, False)]


class TestTruncatePayload:
    """Tests for payload previews."""

    def test_short_payload_is_unchanged(self) -> None:
        """Bodies under the limit are decoded in full."""
        assert truncate_payload(b'{"a":1}', 1024) == '{"a":1}'

    def test_long_payload_is_marked(self) -> None:
        """Dropped bytes are counted in the marker."""
        assert truncate_payload(b"x" * 10, 4) == "xxxx...[truncated 6 bytes]"

    def test_invalid_utf8_does_not_raise(self) -> None:
        """Undecodable bytes are replaced, never raised."""
        assert truncate_payload(b"\xff\xfe", 10) == "\ufffd\ufffd"

    def test_negative_limit_is_clamped(self) -> None:
        """A negative limit previews nothing."""
        assert truncate_payload(b"abc", -1) == "...[truncated 3 bytes]"

from __future__ import annotations

import logging

from streamcore.logging_config import RedactSecretsFilter


def _record(msg: str, *args: object) -> logging.LogRecord:
    return logging.LogRecord("streamcore.test", logging.INFO, __file__, 1, msg, args, None)


def test_signature_values_are_masked() -> None:
    record = _record("Fetching %s", "/stream/news/master.m3u8?expires=1700000000&sig=abcdef0123")

    assert RedactSecretsFilter().filter(record) is True
    assert record.getMessage() == "Fetching /stream/news/master.m3u8?expires=1700000000&sig=[redacted]"


def test_plain_messages_are_untouched() -> None:
    record = _record("Channel %s restarted (%d)", "news", 2)

    RedactSecretsFilter().filter(record)

    assert record.msg == "Channel %s restarted (%d)"
    assert record.args == ("news", 2)

from __future__ import annotations

import logging


def format_bytes(value: object) -> object:
    """Render raw trie prefixes and sync ids as hex for log output."""

    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).hex() or "<root>"
    return value


class BytesFormattingFilter(logging.Filter):
    """Log filter that turns bytes arguments into readable hex strings."""

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.args, tuple) and record.args:
            record.args = tuple(format_bytes(arg) for arg in record.args)
        return True


def setup_logging(level: str) -> None:
    """Configure application logging with hex rendering of byte prefixes."""

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    # Filters on the root logger skip records propagated from child loggers.
    for handler in logging.getLogger().handlers:
        if not any(isinstance(item, BytesFormattingFilter) for item in handler.filters):
            handler.addFilter(BytesFormattingFilter())

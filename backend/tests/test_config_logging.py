from __future__ import annotations

import logging

from synchealth.core.config import Settings, get_settings
from synchealth.core.logging import BytesFormattingFilter, format_bytes


def test_allowed_peers_accepts_comma_and_json_lists() -> None:
    assert Settings(_env_file=None, ALLOWED_PEERS="a, b,,c").parsed_allowed_peers() == ["a", "b", "c"]
    assert Settings(_env_file=None, ALLOWED_PEERS='["x", " y "]').parsed_allowed_peers() == ["x", "y"]
    assert Settings(_env_file=None).parsed_allowed_peers() == []


def test_span_count_mode_falls_back_to_optimized() -> None:
    assert Settings(_env_file=None, SPAN_COUNT_MODE="Stepwise").normalized_span_count_mode() == "stepwise"
    assert Settings(_env_file=None, SPAN_COUNT_MODE="bogus").normalized_span_count_mode() == "optimized"


def test_settings_read_environment(monkeypatch) -> None:
    monkeypatch.setenv("MAX_NUM_PEERS", "3")
    monkeypatch.setenv("RPC_TIMEOUT_SEC", "0.5")
    get_settings.cache_clear()
    try:
        settings = get_settings()
        assert settings.max_num_peers == 3
        assert settings.rpc_timeout_sec == 0.5
    finally:
        get_settings.cache_clear()


def test_bytes_arguments_are_logged_as_hex() -> None:
    record = logging.LogRecord(
        "synchealth", logging.INFO, __file__, 1, "prefix=%s count=%d", (b"\x00\x94", 3), None
    )
    assert BytesFormattingFilter().filter(record)
    assert record.getMessage() == "prefix=0094 count=3"
    assert format_bytes(b"") == "<root>"
    assert format_bytes("text") == "text"

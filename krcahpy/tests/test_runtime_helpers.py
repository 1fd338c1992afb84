from __future__ import annotations

import logging

from krcahpy.core._memory import _parse_mem_env_to_bytes, memory_manager
from krcahpy.core.logfmt import DETAIL, STATUS, VERBOSE, KrcahFormatter, level_for_output_mode
from krcahpy.core.progress import bar_callback, is_progress_enabled, make_progress_bar, set_progress_enabled


def test_parse_scheduler_memory_strings() -> None:
    assert _parse_mem_env_to_bytes("2048") == 2048 * 1024 * 1024
    assert _parse_mem_env_to_bytes("4G") == 4 * 1024**3
    assert _parse_mem_env_to_bytes("512mb") == 512 * 1024**2
    assert _parse_mem_env_to_bytes("") is None
    assert _parse_mem_env_to_bytes("lots") is None


def test_memory_manager_chunk_is_bounded() -> None:
    for kind in ("statistics", "functor", "hessian"):
        chunk = memory_manager("cpu", kind)(1000)
        assert 1 <= chunk <= 1000
    assert memory_manager("cpu", "functor")(0) == 1


def test_output_mode_levels() -> None:
    assert level_for_output_mode("quiet") == STATUS
    assert level_for_output_mode("standard") == DETAIL
    assert level_for_output_mode("verbose") == VERBOSE
    assert level_for_output_mode("debug") == logging.DEBUG
    assert level_for_output_mode("unknown") == DETAIL


def test_formatter_prefixes() -> None:
    fmt = KrcahFormatter()
    info = logging.LogRecord("x", logging.INFO, __file__, 1, "hello", None, None)
    warn = logging.LogRecord("x", logging.WARNING, __file__, 1, "careful", None, None)
    assert fmt.format(info) == "KRCAH: hello"
    assert fmt.format(warn) == "KRCAH [WARNING]: careful"


def test_progress_override_and_bar_callback(monkeypatch) -> None:
    monkeypatch.setenv("KRCAHPY_PROGRESS", "1")
    try:
        set_progress_enabled(False)
        assert is_progress_enabled() is False
        set_progress_enabled(None)
        assert is_progress_enabled() is True
        assert is_progress_enabled(False) is False
    finally:
        set_progress_enabled(None)

    with make_progress_bar(total=1, desc="test", enabled=False) as bar:
        cb = bar_callback(bar)
        cb(3, 5)
        assert bar.total == 5
        assert bar.n == 3

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from trip_curator.logging_conf import close_run_logger, configure_logging, run_logger


def _read(path: Path) -> str:
    return path.read_text(encoding="utf-8") if path.exists() else ""


def test_run_logger_writes_only_its_own_run(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TRIP_CURATOR_HOME", str(tmp_path))
    configure_logging()
    first = run_logger("20260301-tokyo", "20260301-120000")
    second = run_logger("20260301-tokyo", "20260301-130000")
    first.info("stage_started", stage_id="00_enhancement")
    second.info("stage_started", stage_id="05_candidates_deduped")
    close_run_logger("20260301-tokyo", "20260301-120000")
    close_run_logger("20260301-tokyo", "20260301-130000")

    runs_dir = tmp_path / "logs" / "runs"
    first_text = _read(runs_dir / "20260301-tokyo__20260301-120000.log")
    second_text = _read(runs_dir / "20260301-tokyo__20260301-130000.log")
    assert "00_enhancement" in first_text
    assert "05_candidates_deduped" not in first_text
    assert "05_candidates_deduped" in second_text


def test_close_run_logger_detaches_handlers(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TRIP_CURATOR_HOME", str(tmp_path))
    py_logger = logging.getLogger("trip_curator.run")
    before = len(py_logger.handlers)

    for index in range(20):
        run_logger("20260301-kyoto", f"20260301-1200{index:02d}")
    assert len(py_logger.handlers) == before + 20

    closed = [close_run_logger("20260301-kyoto", f"20260301-1200{index:02d}") for index in range(20)]
    assert closed == [1] * 20
    assert len(py_logger.handlers) == before
    assert close_run_logger("20260301-kyoto", "20260301-120000") == 0


def test_run_logger_reuses_open_handler(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TRIP_CURATOR_HOME", str(tmp_path))
    py_logger = logging.getLogger("trip_curator.run")
    before = len(py_logger.handlers)
    run_logger("20260301-osaka", "20260301-120000")
    run_logger("20260301-osaka", "20260301-120000")
    assert len(py_logger.handlers) == before + 1
    close_run_logger("20260301-osaka", "20260301-120000")

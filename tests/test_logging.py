# tests/test_logging.py

from __future__ import annotations

import logging
from pathlib import Path

from ember_followup.logging_setup import _PromptFilter, setup_logging


def _record(name: str, level: int) -> logging.LogRecord:
    return logging.LogRecord(name, level, __file__, 1, "msg", None, None)


def test_prompt_filter_levels() -> None:
    f = _PromptFilter()
    assert f.filter(_record("ember_followup.store.data_store", logging.INFO))
    assert not f.filter(_record("ember_followup.tasks.sweeper", logging.INFO))
    assert f.filter(_record("ember_followup.tasks.sweeper", logging.WARNING))
    assert not f.filter(_record("ember_followup.reports.scheduler", logging.DEBUG))
    assert not f.filter(_record("urllib3.connectionpool", logging.WARNING))
    assert not f.filter(_record("py.warnings", logging.WARNING))
    assert f.filter(_record("py.warnings", logging.ERROR))


def test_setup_logging_writes_background_info_to_file(tmp_path: Path) -> None:
    root = logging.getLogger()
    saved, level = list(root.handlers), root.level
    try:
        log_file = setup_logging(log_dir=tmp_path / "logs")
        setup_logging(log_dir=tmp_path / "logs")
        assert log_file == tmp_path / "logs" / "ember.log"
        assert len(root.handlers) == 2

        logging.getLogger("ember_followup.tasks.sweeper").info("swept 3 task(s)")
        for handler in root.handlers:
            handler.flush()
        assert "swept 3 task(s)" in log_file.read_text(encoding="utf-8")
    finally:
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()
        for handler in saved:
            root.addHandler(handler)
        root.setLevel(level)
        logging.captureWarnings(False)

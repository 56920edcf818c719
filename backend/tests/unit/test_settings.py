"""
Tests for configuration validation and logging setup.
"""

import logging
import os
from logging.handlers import RotatingFileHandler
from unittest.mock import patch

import pytest

from config import paths
from config.settings import AppConfig, setup_logging


@pytest.mark.unit
class TestValidate:

    def test_defaults_are_valid(self):
        assert AppConfig.validate() is True

    @pytest.mark.parametrize("name,value", [
        ("SCAN_CONCURRENCY", 0),
        ("PULL_TIMEOUT", 0),
        ("MANIFEST_TIMEOUT", -1),
        ("HISTORY_LIMIT", 0),
    ])
    def test_rejects_bad_values(self, name, value):
        with patch.object(AppConfig, name, value):
            with pytest.raises(ValueError):
                AppConfig.validate()


@pytest.mark.unit
def test_setup_logging_writes_rotating_file(tmp_path, monkeypatch):
    monkeypatch.setattr(paths, "DATA_DIR", str(tmp_path))
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level

    try:
        setup_logging("debug")

        assert root.level == logging.DEBUG
        file_handlers = [h for h in root.handlers if isinstance(h, RotatingFileHandler)]
        assert len(file_handlers) == 1
        assert file_handlers[0].baseFilename == os.path.join(str(tmp_path), "logs", "dockpilot.log")
        assert logging.getLogger("aiohttp").level == logging.WARNING
    finally:
        for handler in root.handlers[:]:
            handler.close()
            root.removeHandler(handler)
        for handler in saved_handlers:
            root.addHandler(handler)
        root.setLevel(saved_level)

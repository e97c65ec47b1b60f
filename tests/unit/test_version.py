# tests/unit/test_version.py
import importlib
from importlib.metadata import PackageNotFoundError

import toolwire


def test_version_falls_back_when_not_installed(monkeypatch):
    def not_installed(name):
        raise PackageNotFoundError(name)

    monkeypatch.setattr("importlib.metadata.version", not_installed)
    try:
        assert importlib.reload(toolwire).__version__ == "unknown"
    finally:
        monkeypatch.undo()
        importlib.reload(toolwire)

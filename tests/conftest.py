import sys
from pathlib import Path

import pytest

_root = Path(__file__).resolve().parents[1]
_src = _root / "src"
if _src.exists() and str(_src) not in sys.path:
    sys.path.insert(0, str(_src))

from joke_server import settings as settings_module  # noqa: E402


@pytest.fixture(autouse=True)
def fresh_settings(monkeypatch: pytest.MonkeyPatch):
    """Drop the cached settings so each test reads env / .env again."""
    monkeypatch.delattr(settings_module, "_SETTINGS", raising=False)

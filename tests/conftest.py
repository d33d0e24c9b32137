# tests/conftest.py
from __future__ import annotations

import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest

# Ensure project root importable
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture
def fake_redis() -> MagicMock:
    """Stand-in Redis: nothing cached, every seen-id add is new."""
    conn = MagicMock()
    conn.get.return_value = None
    conn.zadd.return_value = 1
    conn.lrange.return_value = []
    return conn

import sys
from unittest.mock import MagicMock

import pytest

# Mock pyodbc so tests can run without ODBC drivers installed
if "pyodbc" not in sys.modules:
    sys.modules["pyodbc"] = MagicMock()

from app.db.storage import InMemoryStorage  # noqa: E402


@pytest.fixture
def storage():
    """A fresh, empty in-memory record store."""
    return InMemoryStorage()

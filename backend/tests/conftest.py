import sys
from pathlib import Path

import pytest

# Ensure backend/ is importable as the top-level "casecast" package even when pytest runs from repo root
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))
TESTS_DIR = Path(__file__).resolve().parent
if str(TESTS_DIR) not in sys.path:
    sys.path.insert(0, str(TESTS_DIR))

from casecast.config import Settings  # noqa: E402

from _helpers import synthetic_feeds  # noqa: E402


@pytest.fixture
def settings() -> Settings:
    # narrow search grid keeps the suite quick
    return Settings(MAX_P=2, MAX_D=1, MAX_Q=2)


@pytest.fixture
def feeds():
    return synthetic_feeds(days=80)

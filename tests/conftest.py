"""Pytest configuration for grouper_trace tests."""
import sys
from pathlib import Path

# Add src/ and the project root to path for src-layout imports and tests.stubs
_PROJECT_ROOT = Path(__file__).parent.parent
_SRC = _PROJECT_ROOT / 'src'
if str(_SRC) not in sys.path:
    sys.path.insert(0, str(_SRC))
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))

import pytest

from tests.stubs.directory import StubDirectory


@pytest.fixture
def directory():
    """Empty stub directory for subject S1."""
    return StubDirectory(subject_id='S1')

"""Pytest configuration for the hybrid test suite."""

import sys
from pathlib import Path

import pytest

# Make the hybrid package importable without installation
sys.path.insert(0, str(Path(__file__).parent.parent))

from hybrid.mappings import default_mappings  # noqa: E402

EXAMPLES_DIR = Path(__file__).parent / "examples"


@pytest.fixture(scope="session")
def mappings():
    return default_mappings()


@pytest.fixture
def examples_dir() -> Path:
    return EXAMPLES_DIR

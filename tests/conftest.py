"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import json
import sys
from pathlib import Path

import pytest

# Add project root (and tests/ for the shared doubles) to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))
sys.path.insert(0, str(Path(__file__).parent))

from doubles import sample_curriculum, write_curriculum_tree  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (require database)")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def engine(tmp_path):
    """Fresh SQLite catalog in a temporary file."""
    from apollo.db.database import create_engine_for, init_db

    engine = create_engine_for(f"sqlite:///{tmp_path / 'apollo.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    """Session factory bound to the temporary catalog."""
    from apollo.db.database import get_session_factory

    return get_session_factory(engine)


@pytest.fixture
def curriculum():
    """Provide a sample curriculum document (as a dict)."""
    return sample_curriculum()


@pytest.fixture
def curriculum_json(curriculum):
    """Provide the sample curriculum serialized to bytes."""
    return json.dumps(curriculum).encode("utf-8")


@pytest.fixture
def curriculum_tree(tmp_path, curriculum):
    """Provide a working directory holding the sample curriculum as a file tree."""
    return write_curriculum_tree(tmp_path / "work", curriculum)

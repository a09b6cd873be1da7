"""
Pytest configuration and shared fixtures for the test suite.
"""

import pytest
import uuid
from pathlib import Path

from src.journeyheal.services.glossary import default_glossary
from src.journeyheal.services.llkb_store import LearnedPatternStore


@pytest.fixture(scope="session")
def package_path():
    """Provide the package source path for tests."""
    return Path(__file__).parent.parent / "src" / "journeyheal"


@pytest.fixture
def llkb_root(tmp_path):
    """Create a temporary learned pattern store root."""
    root = tmp_path / "llkb"
    root.mkdir()
    return root


@pytest.fixture
def heal_log_dir(tmp_path):
    """Create a temporary directory for healing logs."""
    log_dir = tmp_path / "heal-logs"
    log_dir.mkdir()
    return log_dir


@pytest.fixture
def glossary():
    """Fresh copy of the built-in glossary."""
    return default_glossary()


@pytest.fixture
def store(llkb_root, glossary):
    """Empty learned pattern store in a temp directory."""
    return LearnedPatternStore(str(llkb_root), glossary=glossary)


@pytest.fixture
def sample_journey_id():
    """Generate a unique journey ID."""
    return f"JRN-{uuid.uuid4().hex[:8]}"


@pytest.fixture(autouse=True)
def setup_test_logging():
    """Set up logging for tests."""
    import logging
    logging.basicConfig(
        level=logging.DEBUG,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

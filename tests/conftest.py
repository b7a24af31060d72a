"""
Shared pytest fixtures for the CryptJournal test suite.

Every store lives in a temporary directory, and the shared logger is reset
after each test so that AppConfig file handlers never leak between tests.
"""

import logging

import pytest

from config import APP_NAME
from crypto import FernetCipher
from storage import JournalStore

# Low work factor keeps the salted-format tests fast.
TEST_ITERATIONS = 1_000


@pytest.fixture(autouse=True)
def _reset_logger():
    logger = logging.getLogger(APP_NAME)
    before = list(logger.handlers)
    yield
    for handler in list(logger.handlers):
        if handler not in before:
            logger.removeHandler(handler)
            handler.close()


@pytest.fixture
def journal_dir(tmp_path):
    return tmp_path / "Journals"


@pytest.fixture
def store(journal_dir):
    """A store writing the header-less legacy format."""
    return JournalStore(str(journal_dir))


@pytest.fixture
def fernet_store(journal_dir):
    """A store writing the salted Fernet format."""
    return JournalStore(
        str(journal_dir),
        cipher=FernetCipher(TEST_ITERATIONS),
        kdf_iterations=TEST_ITERATIONS,
    )


@pytest.fixture(params=["legacy", "fernet"])
def any_store(request, store, fernet_store):
    """Runs a test once per cipher format."""
    return store if request.param == "legacy" else fernet_store

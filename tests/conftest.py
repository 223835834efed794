import os

import pytest

os.environ.setdefault("LOGGING__CONSOLE_LOGGING", "false")

from twr_engine.core.logging.logger import cleanup_logging  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def shared_log_handler():
    yield
    cleanup_logging()

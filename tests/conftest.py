"""
Pytest configuration and shared fixtures.
"""

import logging
import os

import pytest


_ENV_VARS = (
    "DATABASE_PATH",
    "REDIS_URL",
    "RUN_WORKERS_IN_API",
    "NOTIFIER_WEBHOOK_URL",
    "LOG_DIR",
)


@pytest.fixture(autouse=True, scope="function")
def isolated_environment():
    """
    Keep tests independent of the developer's environment and .env file.

    Tests run with the in-memory bus, no webhook, workers off and logging
    to the console only, unless the test explicitly sets otherwise.
    """
    original = {name: os.environ.get(name) for name in _ENV_VARS}

    os.environ["REDIS_URL"] = ""
    os.environ["NOTIFIER_WEBHOOK_URL"] = ""
    os.environ["RUN_WORKERS_IN_API"] = "false"
    os.environ["LOG_DIR"] = ""

    yield

    for name, value in original.items():
        if value is not None:
            os.environ[name] = value
        elif name in os.environ:
            del os.environ[name]

    # setup_logging() disables propagation; undo it so caplog keeps working
    package_logger = logging.getLogger("src")
    for handler in list(package_logger.handlers):
        handler.close()
    package_logger.handlers.clear()
    package_logger.propagate = True
    package_logger.setLevel(logging.NOTSET)

# conftest.py
from __future__ import annotations

import os

import pytest

from exprkit import Compiler
from exprkit.core.logging import (
    bind_context,
    configure_from_env,
    enable_stdout_logging,
    get_logger,
    log_context,
)
from tests.helpers.models import Order


def pytest_addoption(parser):
    parser.addoption(
        "--log-json",
        action="store_true",
        default=False,
        help="Emit exprkit logs in JSON format during tests",
    )


@pytest.fixture(scope="session", autouse=True)
def _configure_exprkit_logging(request):
    configure_from_env()
    prefer_json = request.config.getoption("--log-json")
    # unless the environment already asked for stdout logging, use the readable format
    if os.getenv("EXPRKIT_LOG_STDOUT", "").lower() not in ("1", "true", "yes", "on"):
        enable_stdout_logging(level="DEBUG", json_output=prefer_json, pretty=not prefer_json)
    bind_context(role="pytest")


@pytest.fixture(autouse=True)
def _test_log_context(request):
    log = get_logger("test")
    with log_context(test=request.node.name):
        log.debug("pytest.test.start", event="pytest.test.start")
        yield


@pytest.fixture
def compiler() -> Compiler:
    """Compiler with nothing beyond the baseline references and namespaces."""
    return Compiler([], [])


@pytest.fixture
def model_compiler() -> Compiler:
    """Compiler that can see the test models."""
    return Compiler([Order], ["tests.helpers.models"])

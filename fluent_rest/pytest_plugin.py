"""pytest plugin: configuration isolation and a --fluent-base-url option.

Registered through the "pytest11" entry point, so it loads automatically once
fluent-rest is installed.
"""

from __future__ import annotations

from typing import Generator

import pytest

from fluent_rest.config import configure, current_defaults, restore_defaults
from fluent_rest.models import Configuration


def pytest_addoption(parser: pytest.Parser) -> None:
    group = parser.getgroup("fluent-rest")
    group.addoption(
        "--fluent-base-url",
        action="store",
        default=None,
        help="Base URL applied with fluent_rest.configure() at session start",
    )
    group.addoption(
        "--fluent-timeout-ms",
        action="store",
        type=int,
        default=None,
        help="Default request timeout in milliseconds",
    )


def pytest_configure(config: pytest.Config) -> None:
    options = {}
    base_url = config.getoption("--fluent-base-url", default=None)
    timeout_ms = config.getoption("--fluent-timeout-ms", default=None)
    if base_url:
        options["base_url"] = base_url
    if timeout_ms is not None:
        options["timeout_ms"] = timeout_ms
    if options:
        configure(**options)


@pytest.fixture
def fluent_defaults() -> Generator[Configuration, None, None]:
    """Yield the current defaults and restore them after the test.

    Tests may call configure() freely; later tests see the defaults as they
    were before.
    """
    saved = current_defaults()
    yield saved
    restore_defaults(saved)

"""Shared fixtures for the HttpBroker suite."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from broker_fakes import Harness


@pytest.fixture
def harness(tmp_path: Path) -> Harness:
    return Harness(tmp_path)


@pytest.fixture(autouse=True)
def _propagating_broker_logger():
    """``setup_logging`` turns propagation off; caplog needs it on."""
    yield
    logger = logging.getLogger("HttpBroker")
    for handler in list(logger.handlers):
        if getattr(handler, "_httpbroker_managed", False):
            logger.removeHandler(handler)
            handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)

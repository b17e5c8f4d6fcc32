"""Shared test utilities for unit and integration tests."""

from tests.utils.fake_peer import FakePeer, FakePeerFactory, make_server_config, tool, wait_until
from tests.utils.probes import CallProbe
from tests.utils.result_assertions import assert_error, assert_ok


__all__ = [
    "CallProbe",
    "FakePeer",
    "FakePeerFactory",
    "assert_error",
    "assert_ok",
    "make_server_config",
    "tool",
    "wait_until",
]

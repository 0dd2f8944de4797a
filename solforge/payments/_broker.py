"""Dramatiq broker setup used by the payout actors.

Dramatiq binds each actor to a broker when the actor is declared, so the
broker has to be chosen before :mod:`solforge.payments.actor` is imported.
``SOLFORGE_BROKER_URL`` selects a Redis broker. A stub broker, which keeps
messages in memory and never delivers them to a worker, is only installed
under pytest or when ``SOLFORGE_ALLOW_STUB_BROKER`` is set.
"""

from __future__ import annotations

import os
import sys
import threading

import dramatiq
from dramatiq.brokers.redis import RedisBroker
from dramatiq.brokers.stub import StubBroker

_BROKER_LOCK = threading.Lock()
_broker_configured = False
_TEST_ENV_VARS = ("PYTEST_CURRENT_TEST", "PYTEST_XDIST_WORKER", "PYTEST_ADDOPTS")


def _is_running_tests() -> bool:
    """Return True when pytest is driving the current process."""
    return "pytest" in sys.modules or any(key in os.environ for key in _TEST_ENV_VARS)


def _should_use_stub_broker() -> bool:
    """Return True when ``SOLFORGE_ALLOW_STUB_BROKER`` is set or under pytest."""
    allow_stub = os.environ.get("SOLFORGE_ALLOW_STUB_BROKER", "")
    return allow_stub.lower() in {"1", "true", "yes"} or _is_running_tests()


def build_broker() -> dramatiq.Broker:
    """Return the broker the payout actors should be declared against.

    Raises
    ------
    RuntimeError
        If ``SOLFORGE_BROKER_URL`` is unset outside a test or stub-allowed
        context.

    """
    url = os.environ.get("SOLFORGE_BROKER_URL", "").strip()
    if url:
        return RedisBroker(url=url)
    if _should_use_stub_broker():
        return StubBroker()
    message = (
        "No Dramatiq broker configured. Set SOLFORGE_BROKER_URL to a Redis URL, "
        "or SOLFORGE_ALLOW_STUB_BROKER=1 for local runs that never pay out."
    )
    raise RuntimeError(message)


def ensure_broker_configured() -> None:
    """Install the broker from :func:`build_broker` once per process.

    Idempotent and safe to call from several worker threads at once.

    Raises
    ------
    RuntimeError
        If no real broker is configured outside a test or stub-allowed
        context.

    """
    global _broker_configured

    if _broker_configured:
        return

    with _BROKER_LOCK:
        if _broker_configured:
            return
        dramatiq.set_broker(build_broker())
        _broker_configured = True

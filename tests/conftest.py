"""
Shared test fixtures for the weighbridge test suite.
"""

import time
from dataclasses import replace

import pytest

from weighbridge.config.scale_models import PRESET_SCALE_MODELS
from weighbridge.config.settings import TerminalSettings
from weighbridge.core.draft_store import DraftStore
from weighbridge.core.terminal import WeighbridgeTerminal
from weighbridge.core.workflow import WeighingWorkflow
from weighbridge.drivers.auto_policy import AutoPolicyEngine
from weighbridge.drivers.device_link import DeviceLink
from weighbridge.drivers.simulator import ScaleSimulator


@pytest.fixture
def cas_model():
    return PRESET_SCALE_MODELS["cas-cs-200"]


@pytest.fixture
def quiet_model(cas_model):
    """CAS command set without auto-tare, polling or connection delay."""
    return replace(
        cas_model,
        auto=replace(
            cas_model.auto,
            auto_tare=False,
            auto_zero=False,
            polling_interval_ms=0,
            connection_delay_ms=0,
        ),
    )


@pytest.fixture
def simulator():
    return ScaleSimulator()


@pytest.fixture
def link(simulator):
    link = DeviceLink(transport_factory=simulator.factory)
    yield link
    link.close()


@pytest.fixture
def engine(link, quiet_model):
    """Policy engine with millisecond delays (not opened)."""
    engine = AutoPolicyEngine(
        link, quiet_model,
        retry_delay_sec=0.01, settle_delay_sec=0.0, reconnect_delay_sec=0.01,
    )
    yield engine
    engine.close()


@pytest.fixture
def store(tmp_path):
    return DraftStore(directory=str(tmp_path))


@pytest.fixture
def workflow(store):
    return WeighingWorkflow(store)


@pytest.fixture
def settings(tmp_path):
    return TerminalSettings(
        port="SIM1",
        drafts_dir=str(tmp_path / "drafts"),
        retry_delay_sec=0.01,
        settle_delay_sec=0.0,
        reconnect_delay_sec=0.01,
    )


@pytest.fixture
def terminal(quiet_model, settings, simulator):
    """Terminal on a simulated indicator (not started)."""
    terminal = WeighbridgeTerminal(quiet_model, settings=settings, simulator=simulator)
    yield terminal
    terminal.stop()


@pytest.fixture
def wait_until():
    """Poll a condition set by a background thread."""

    def _wait(predicate, timeout=2.0):
        deadline = time.time() + timeout
        while time.time() < deadline:
            if predicate():
                return True
            time.sleep(0.005)
        return predicate()

    return _wait

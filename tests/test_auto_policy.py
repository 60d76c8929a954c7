"""
Tests for the AutoPolicyEngine (auto commands, polling, retry, reconnect).
"""

import threading
import time
from dataclasses import replace

import pytest

from weighbridge.core.errors import OpenFailedError
from weighbridge.drivers.auto_policy import AutoPolicyEngine
from weighbridge.drivers.device_link import DeviceLink


def with_auto(model, **changes):
    return replace(model, auto=replace(model.auto, **changes))


@pytest.fixture
def recorded_sleeps(engine, monkeypatch):
    """Replace the engine's waits with a recorder (no real delay)."""
    sleeps = []

    def fake_sleep(seconds):
        sleeps.append(seconds)
        return False

    monkeypatch.setattr(engine, "_sleep", fake_sleep)
    return sleeps


class TestConnect:
    """Test the connect sequence."""

    def test_open(self, engine, link, simulator, wait_until):
        assert engine.open("SIM1") is True
        assert engine.is_connected
        assert link.is_reading
        # Initial weight request is sent once the read loop runs
        assert simulator.commands_received == ["W\r\n"]
        assert wait_until(lambda: link.last_reading is not None)

    def test_open_failure_returns_false(self, link, simulator, quiet_model):
        simulator.fail_open = True
        engine = AutoPolicyEngine(link, with_auto(quiet_model, auto_reconnect=False))
        assert engine.open("SIM1") is False
        assert not engine.is_connected
        assert engine.reconnect_attempts == 0
        engine.close()

    def test_auto_tare_and_zero(self, link, simulator, quiet_model, monkeypatch):
        model = with_auto(quiet_model, auto_tare=True, auto_zero=True)
        engine = AutoPolicyEngine(link, model, settle_delay_sec=1.0)
        sleeps = []
        monkeypatch.setattr(engine, "_sleep", lambda s: sleeps.append(s) or False)

        assert engine.open("SIM1") is True
        assert simulator.commands_received[:3] == ["T\r\n", "Z\r\n", "W\r\n"]
        assert sleeps == [1.0, 1.0]
        engine.close()

    def test_auto_tare_only(self, link, simulator, quiet_model):
        model = with_auto(quiet_model, auto_tare=True)
        engine = AutoPolicyEngine(link, model, settle_delay_sec=0.0)
        engine.open("SIM1")
        assert simulator.commands_received[:2] == ["T\r\n", "W\r\n"]
        engine.close()

    def test_connection_delay(self, link, quiet_model, monkeypatch):
        model = with_auto(quiet_model, connection_delay_ms=1500)
        engine = AutoPolicyEngine(link, model)
        sleeps = []
        monkeypatch.setattr(engine, "_sleep", lambda s: sleeps.append(s) or False)
        engine.open("SIM1")
        assert sleeps == [1.5]
        engine.close()

    def test_auto_command_failure_not_fatal(self, link, simulator, quiet_model):
        model = with_auto(quiet_model, auto_tare=True)
        engine = AutoPolicyEngine(link, model, settle_delay_sec=0.0)
        simulator.fail_writes = True
        assert engine.open("SIM1") is True
        assert engine.is_connected
        engine.close()


class TestPolling:
    """Test periodic weight requests."""

    def test_polling_sends_get_weight(self, link, simulator, quiet_model, wait_until):
        engine = AutoPolicyEngine(link, with_auto(quiet_model, polling_interval_ms=20))
        engine.open("SIM1")
        assert engine.is_polling
        assert wait_until(lambda: simulator.commands_received.count("W\r\n") >= 4)
        engine.close()

    def test_close_stops_polling(self, link, simulator, quiet_model):
        engine = AutoPolicyEngine(link, with_auto(quiet_model, polling_interval_ms=20))
        engine.open("SIM1")
        engine.close()
        assert not engine.is_polling
        sent = len(simulator.commands_received)
        time.sleep(0.1)
        assert len(simulator.commands_received) == sent

    def test_no_polling_when_interval_zero(self, engine):
        engine.open("SIM1")
        assert not engine.is_polling

    def test_double_close(self, link, quiet_model):
        engine = AutoPolicyEngine(link, with_auto(quiet_model, polling_interval_ms=20))
        engine.open("SIM1")
        engine.close()
        engine.close()
        assert not engine.is_polling
        assert not link.is_open


class TestRetry:
    """Test bounded command retry."""

    def test_success_first_attempt(self, engine, simulator, recorded_sleeps):
        engine.open("SIM1")
        assert engine.tare() is True
        assert simulator.commands_received[-1] == "T\r\n"
        assert recorded_sleeps == []

    def test_all_attempts_fail(self, link, simulator, quiet_model, monkeypatch):
        engine = AutoPolicyEngine(link, quiet_model)
        engine.open("SIM1")
        sleeps = []
        monkeypatch.setattr(engine, "_sleep", lambda s: sleeps.append(s) or False)
        simulator.fail_writes = True
        attempts_before = simulator.write_attempts

        assert engine.tare() is False
        assert simulator.write_attempts - attempts_before == 3
        assert sleeps == [1.0, 1.0]
        engine.close()

    def test_retry_then_success(self, link, simulator, quiet_model, monkeypatch):
        engine = AutoPolicyEngine(link, quiet_model)
        engine.open("SIM1")
        sleeps = []

        def fake_sleep(seconds):
            sleeps.append(seconds)
            simulator.fail_writes = False
            return False

        monkeypatch.setattr(engine, "_sleep", fake_sleep)
        simulator.fail_writes = True
        assert engine.zero() is True
        assert sleeps == [1.0]
        assert simulator.commands_received[-1] == "Z\r\n"
        engine.close()

    def test_retry_count_follows_model(self, link, simulator, quiet_model, monkeypatch):
        engine = AutoPolicyEngine(link, with_auto(quiet_model, retry_attempts=5))
        engine.open("SIM1")
        monkeypatch.setattr(engine, "_sleep", lambda s: False)
        simulator.fail_writes = True
        attempts_before = simulator.write_attempts
        assert engine.reset() is False
        assert simulator.write_attempts - attempts_before == 5
        engine.close()

    def test_unsupported_command(self, link, simulator, quiet_model):
        model = replace(quiet_model, commands=replace(quiet_model.commands, calibration=None))
        engine = AutoPolicyEngine(link, model)
        engine.open("SIM1")
        sent = simulator.write_attempts
        assert engine.calibrate() is False
        assert simulator.write_attempts == sent
        engine.close()

    def test_retry_stops_after_close(self, engine, simulator):
        engine.open("SIM1")
        engine.close()
        assert engine.check_device_status() is False

    def test_device_commands(self, engine, simulator):
        engine.open("SIM1")
        assert engine.check_device_status() is True
        assert engine.calibrate() is True
        assert engine.reset() is True
        assert simulator.commands_received[-3:] == ["S\r\n", "C\r\n", "R\r\n"]

    def test_get_current_weight(self, engine, simulator, wait_until):
        simulator.drive_on(9500.0)
        engine.open("SIM1")
        assert wait_until(lambda: engine.link.last_reading is not None)
        reading = engine.get_current_weight()
        assert reading.weight == 9500.0

    def test_get_current_weight_when_closed(self, engine):
        assert engine.get_current_weight() is None


class TestReconnect:
    """Test bounded automatic reconnect."""

    def test_reconnect_after_link_drop(self, engine, simulator, wait_until):
        engine.open("SIM1")
        simulator.drop_link()
        assert wait_until(
            lambda: simulator.open_count == 2 and engine.reconnect_attempts == 0
        )
        assert engine.is_connected
        assert wait_until(lambda: engine.link.is_reading)

    def test_reconnect_is_bounded(self, engine, simulator, wait_until):
        engine.open("SIM1")
        simulator.fail_open = True
        simulator.drop_link()
        # One successful open plus retry_attempts (3) failed reconnects
        assert wait_until(lambda: simulator.open_attempts == 4)
        time.sleep(0.1)
        assert simulator.open_attempts == 4
        assert engine.reconnect_attempts == 3
        assert not engine.is_connected

    def test_no_reconnect_when_disabled(self, link, simulator, quiet_model, wait_until):
        engine = AutoPolicyEngine(
            link, with_auto(quiet_model, auto_reconnect=False), reconnect_delay_sec=0.01
        )
        engine.open("SIM1")
        simulator.drop_link()
        assert wait_until(lambda: not engine.is_connected)
        time.sleep(0.1)
        assert simulator.open_attempts == 1
        engine.close()

    def test_reconnect_after_failed_open(self, link, simulator, quiet_model, wait_until):
        engine = AutoPolicyEngine(link, quiet_model, reconnect_delay_sec=0.05)
        simulator.fail_open = True
        assert engine.open("SIM1") is False
        simulator.fail_open = False
        assert wait_until(lambda: engine.is_connected)
        engine.close()

    def test_close_cancels_pending_reconnect(self, link, simulator, quiet_model):
        engine = AutoPolicyEngine(link, quiet_model, reconnect_delay_sec=5.0)
        simulator.fail_open = True
        engine.open("SIM1")
        start = time.time()
        engine.close()
        assert time.time() - start < 1.0
        assert simulator.open_attempts == 1
        assert engine.reconnect_attempts == 0

    def test_close_resets_attempts(self, engine, simulator, wait_until):
        simulator.fail_open = True
        engine.open("SIM1")
        assert engine.reconnect_attempts >= 1
        engine.close()
        assert engine.reconnect_attempts == 0

    def test_close_during_slow_reconnect_open(self, simulator, quiet_model, wait_until):
        """A port that finishes opening after close() is released again."""
        entered = threading.Event()
        release = threading.Event()
        calls = []

        def busy_then_slow(port, config):
            calls.append(port)
            if len(calls) == 1:
                raise OpenFailedError(f"{port} busy")
            entered.set()
            release.wait(5.0)
            return simulator.factory(port, config)

        link = DeviceLink(transport_factory=busy_then_slow)
        engine = AutoPolicyEngine(link, quiet_model, reconnect_delay_sec=0.01)
        assert engine.open("SIM1") is False
        assert entered.wait(2.0)

        closer = threading.Thread(target=engine.close)
        closer.start()
        assert wait_until(lambda: engine._cancel.is_set())
        release.set()
        closer.join(timeout=5.0)

        assert not closer.is_alive()
        assert not link.is_open
        assert not link.status.connected
        assert not engine.is_polling
        assert simulator.commands_received == []

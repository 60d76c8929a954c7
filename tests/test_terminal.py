"""
Tests for the WeighbridgeTerminal (link + workflow integration).
"""

from dataclasses import replace

from weighbridge.core.models import DepartureDetails, DraftStatus
from weighbridge.core.terminal import WeighbridgeTerminal


def show_weight(terminal, simulator, wait_until, load, stable=True):
    """Put a load on the platform and wait for the terminal to see it."""
    simulator.drive_on(load, stable=stable)
    simulator.emit_weight()
    assert wait_until(
        lambda: terminal.latest_reading is not None
        and terminal.latest_reading.weight == load
        and terminal.latest_reading.stable == stable
    )


class TestTerminalLifecycle:

    def test_start_connects(self, terminal, simulator):
        assert terminal.start() is True
        assert terminal.get_status()["connected"] is True
        assert simulator.open_count == 1

    def test_start_without_auto_connect(self, quiet_model, settings, simulator):
        model = replace(quiet_model, auto=replace(quiet_model.auto, auto_connect=False))
        terminal = WeighbridgeTerminal(model, settings=settings, simulator=simulator)
        assert terminal.start() is False
        assert simulator.open_attempts == 0
        terminal.stop()

    def test_stop_disconnects(self, terminal):
        terminal.start()
        terminal.stop()
        assert terminal.get_status()["connected"] is False

    def test_connect_failure_message(self, terminal, simulator):
        simulator.fail_open = True
        assert terminal.cmd_connect().startswith("Scale error")

    def test_connect_and_disconnect(self, terminal):
        assert "Connected" in terminal.cmd_connect("SIM9")
        assert terminal.get_status()["port"] == "SIM9"
        assert terminal.cmd_disconnect() == "Disconnected"

    def test_store_from_settings(self, terminal, settings):
        assert terminal.store.name == settings.store_name
        assert str(terminal.store.path).startswith(settings.drafts_dir)


class TestTerminalIndicatorCommands:

    def test_weigh(self, terminal, simulator, wait_until):
        terminal.start()
        show_weight(terminal, simulator, wait_until, 12000.0)
        assert "12000.00 kg" in terminal.cmd_weigh()

    def test_weigh_not_connected(self, terminal):
        assert terminal.cmd_weigh() == "Scale error: not connected"

    def test_tare_and_zero(self, terminal, simulator):
        terminal.start()
        assert terminal.cmd_tare() == "Tare command sent"
        assert terminal.cmd_zero() == "Zero command sent"
        assert simulator.commands_received[-2:] == ["T\r\n", "Z\r\n"]

    def test_other_device_commands(self, terminal):
        terminal.start()
        assert "sent" in terminal.cmd_calibrate()
        assert "sent" in terminal.cmd_device_status()
        assert "sent" in terminal.cmd_device_reset()

    def test_command_when_disconnected(self, terminal):
        assert terminal.cmd_tare().startswith("Scale error")


class TestTerminalWeighing:

    def test_full_trip(self, terminal, simulator, wait_until):
        terminal.start()
        show_weight(terminal, simulator, wait_until, 12000.0)
        assert "Arrival recorded: 01ABC123" in terminal.cmd_arrive("01 ABC 123")

        show_weight(terminal, simulator, wait_until, 8000.0)
        result = terminal.cmd_depart("01abc123", DepartureDetails(cargo_type="sand"))
        assert "net 4000.00 kg" in result

        [draft] = terminal.workflow.history()
        assert draft.status == DraftStatus.COMPLETED
        assert draft.cargo_type == "sand"
        assert draft.operator_id == "operator"

    def test_arrive_without_reading(self, terminal):
        terminal.start()
        assert terminal.cmd_arrive("A1").startswith("Weighing error")

    def test_weighing_commands_need_link(self, terminal):
        assert terminal.cmd_arrive("A1") == "Scale error: not connected"
        assert terminal.cmd_depart("A1") == "Scale error: not connected"
        assert terminal.store.count == 0

    def test_disconnect_forgets_last_weight(self, terminal, simulator, wait_until):
        terminal.start()
        show_weight(terminal, simulator, wait_until, 15000.0)
        assert terminal.cmd_disconnect() == "Disconnected"
        assert terminal.latest_reading is None
        simulator.drive_off()
        assert terminal.cmd_arrive("02XYZ777") == "Scale error: not connected"
        assert terminal.store.count == 0

    def test_link_drop_clears_latest_reading(self, terminal, simulator, wait_until):
        terminal.start()
        show_weight(terminal, simulator, wait_until, 15000.0)
        simulator.fail_open = True
        simulator.drop_link()
        assert wait_until(lambda: terminal.latest_reading is None)
        assert terminal.cmd_arrive("02XYZ777").startswith("Scale error")

    def test_arrive_while_moving(self, terminal, simulator, wait_until):
        terminal.start()
        show_weight(terminal, simulator, wait_until, 12000.0, stable=False)
        assert "stable" in terminal.cmd_arrive("A1")

    def test_duplicate_arrival_message(self, terminal, simulator, wait_until):
        terminal.start()
        show_weight(terminal, simulator, wait_until, 12000.0)
        terminal.cmd_arrive("A1")
        assert terminal.cmd_arrive("a-1") == (
            "Weighing error: Vehicle A1 already has an open trip"
        )

    def test_depart_unknown_plate(self, terminal, simulator, wait_until):
        terminal.start()
        show_weight(terminal, simulator, wait_until, 8000.0)
        assert terminal.cmd_depart("ZZ1").startswith("Weighing error")

    def test_status_snapshot(self, terminal, simulator, wait_until):
        terminal.start()
        show_weight(terminal, simulator, wait_until, 12000.0)
        terminal.cmd_arrive("A1")
        status = terminal.get_status()
        assert status["model"] == "cas-cs-200"
        assert status["current_weight"] == 12000.0
        assert status["stable"] is True
        assert status["pending_drafts"] == 1
        assert status["completed_drafts"] == 0
        assert status["readings"] >= 1

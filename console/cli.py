"""
Weighbridge CLI Console
========================
Command-line interface for the gatehouse operator. Supports:

  - Indicator commands (connect, weight, tare, zero, calibrate)
  - Arrival / departure weighings by vehicle plate
  - Draft listing, history and daily statistics
  - Settings viewing and modification
  - Simulator controls (offline mode only)

Usage:
  python -m console.cli              # Interactive mode (simulator)
"""

import cmd
import logging
import shlex
import time

from weighbridge.core.models import DepartureDetails, format_weight
from weighbridge.core.terminal import WeighbridgeTerminal

logger = logging.getLogger(__name__)


class WeighbridgeConsole(cmd.Cmd):
    """Interactive CLI for a weighbridge terminal."""

    intro = (
        "\n"
        "╔══════════════════════════════════════════════════════╗\n"
        "║  Weighbridge Terminal | Operator Console            ║\n"
        "║  Type 'help' for commands, 'quit' to exit           ║\n"
        "╚══════════════════════════════════════════════════════╝\n"
    )
    prompt = "WB> "

    def __init__(self, terminal: WeighbridgeTerminal):
        super().__init__()
        self.term = terminal

    # ── Indicator Commands ───────────────────────────────────

    def do_connect(self, arg):
        """Connect to the indicator: connect [port]"""
        print(self.term.cmd_connect(arg.strip() or None))

    def do_disconnect(self, arg):
        """Close the indicator link: disconnect"""
        print(self.term.cmd_disconnect())

    def do_weight(self, arg):
        """Request and show the current weight: weight"""
        print(self.term.cmd_weigh())

    def do_tare(self, arg):
        """Tare the indicator: tare"""
        print(self.term.cmd_tare())

    def do_zero(self, arg):
        """Zero the indicator: zero"""
        print(self.term.cmd_zero())

    def do_calibrate(self, arg):
        """Start indicator calibration: calibrate"""
        print(self.term.cmd_calibrate())

    def do_devstatus(self, arg):
        """Query indicator status: devstatus"""
        print(self.term.cmd_device_status())

    def do_devreset(self, arg):
        """Reset the indicator: devreset"""
        print(self.term.cmd_device_reset())

    # ── Weighing Commands ────────────────────────────────────

    def do_arrive(self, arg):
        """Record the gross weight of an arriving vehicle: arrive <plate>"""
        plate = arg.strip()
        if not plate:
            print("Usage: arrive <plate>")
            return
        print(self.term.cmd_arrive(plate))

    def do_depart(self, arg):
        """Record departure: depart <plate> [supplier=..] [recipient=..] [cargo_type=..] [notes=..]"""
        try:
            parts = shlex.split(arg)
        except ValueError as exc:
            print(f"Invalid arguments: {exc}")
            return
        if not parts:
            print("Usage: depart <plate> [key=value ...]")
            return

        plate, pairs = parts[0], parts[1:]
        fields = {}
        for pair in pairs:
            key, sep, value = pair.partition("=")
            if not sep or key not in DepartureDetails.__dataclass_fields__:
                print(f"Unknown detail: {pair}")
                return
            fields[key] = value
        print(self.term.cmd_depart(plate, DepartureDetails(**fields)))

    def do_drafts(self, arg):
        """Show open drafts (vehicles on site): drafts"""
        pending = self.term.workflow.pending_drafts()
        if not pending:
            print("\n  No open drafts.\n")
            return
        print("\n── Open Drafts ──────────────────────────────────")
        for d in pending:
            ts = time.strftime("%H:%M:%S", time.localtime(d.gross_timestamp))
            print(f"  {d.vehicle_number:<12s} gross {format_weight(d.gross_weight):>14s}"
                  f"  in {ts}  by {d.operator_name}")
        print()

    def do_history(self, arg):
        """Show recent weighings: history [count]"""
        try:
            count = int(arg) if arg.strip() else 10
        except ValueError:
            print("Usage: history [count]")
            return
        drafts = self.term.workflow.history(count)
        print("\n── Recent Weighings ─────────────────────────────")
        for d in drafts:
            net = format_weight(d.net_weight) if d.net_weight is not None else "-"
            print(f"  {d.vehicle_number:<12s} {d.status.value:<10s} "
                  f"gross {format_weight(d.gross_weight):>14s}  net {net:>14s}")
        print()

    def do_stats(self, arg):
        """Show weighing statistics: stats"""
        s = self.term.workflow.stats()
        print("\n── Weighing Statistics ──────────────────────────")
        print(f"  Total Drafts:   {s.total_drafts}")
        print(f"  Completed:      {s.completed}")
        print(f"  Pending:        {s.pending}")
        print(f"  Total Net:      {format_weight(s.total_net_weight)}")
        print(f"  Average Net:    {format_weight(s.average_net_weight)}")
        print()

    # ── Status Commands ──────────────────────────────────────

    def do_status(self, arg):
        """Show terminal status: status"""
        s = self.term.get_status()
        print("\n── Terminal Status ──────────────────────────────")
        print(f"  Indicator:      {s['model']}")
        print(f"  Link:           {'CONNECTED' if s['connected'] else 'DISCONNECTED'}"
              f" ({s['port'] or '-'})")
        print(f"  Weight:         {format_weight(s['current_weight'])}"
              f" {'stable' if s['stable'] else 'MOTION'}")
        print(f"  Polling:        {'ON' if s['polling'] else 'OFF'}")
        print(f"  Readings:       {s['readings']}")
        if s['error']:
            print(f"  Last Error:     {s['error']}")
        print()
        print("── Weighing ─────────────────────────────────────")
        print(f"  Store:          {s['store']}")
        print(f"  Open Drafts:    {s['pending_drafts']}")
        print(f"  Completed:      {s['completed_drafts']}")
        print()

    # ── Settings Commands ────────────────────────────────────

    def do_settings(self, arg):
        """Show terminal settings: settings [filter]"""
        values = self.term.settings.as_dict()
        filter_str = arg.strip().lower() if arg else ""

        print("\n── Terminal Settings ────────────────────────────")
        for key in sorted(values.keys()):
            if filter_str and filter_str not in key.lower():
                continue
            print(f"  {key:<28s} = {values[key]}")
        print()

    def do_set(self, arg):
        """Update a setting (applies on next start): set <key> <value>"""
        parts = arg.strip().split(None, 1)
        if len(parts) != 2:
            print("Usage: set <key> <value>")
            return
        key, value = parts
        if self.term.settings.update(key, value):
            print(f"Setting {key} updated to {getattr(self.term.settings, key)}")
        else:
            print(f"Invalid setting: {key}")

    def do_save(self, arg):
        """Save settings to disk: save [path]"""
        path = arg.strip() or None
        self.term.settings.save(path)
        print("Settings saved")

    # ── Simulator Commands (offline mode) ────────────────────

    def _simulator(self):
        sim = self.term.simulator
        if sim is None:
            print("Not in simulation mode")
        return sim

    def do_sim_load(self, arg):
        """[Sim] Vehicle drives on: sim_load <kg> [moving]"""
        sim = self._simulator()
        if sim is None:
            return
        parts = arg.split()
        try:
            load = float(parts[0])
        except (IndexError, ValueError):
            print("Usage: sim_load <kg> [moving]")
            return
        moving = len(parts) > 1 and parts[1].lower() == "moving"
        sim.drive_on(load, stable=not moving)
        print(f"Simulator load set to {load:.0f} kg{' (moving)' if moving else ''}")

    def do_sim_settle(self, arg):
        """[Sim] Load stops moving: sim_settle"""
        sim = self._simulator()
        if sim is not None:
            sim.settle()
            print("Simulator load settled")

    def do_sim_clear(self, arg):
        """[Sim] Vehicle drives off: sim_clear"""
        sim = self._simulator()
        if sim is not None:
            sim.drive_off()
            print("Simulator platform cleared")

    def do_sim_unplug(self, arg):
        """[Sim] Drop the indicator link: sim_unplug"""
        sim = self._simulator()
        if sim is not None:
            sim.drop_link("cable unplugged")
            print("Simulator link dropped")

    # ── Utility ──────────────────────────────────────────────

    def do_quit(self, arg):
        """Exit the console: quit"""
        print("Shutting down...")
        return True

    def do_exit(self, arg):
        """Exit the console: exit"""
        return self.do_quit(arg)

    do_EOF = do_quit

    def emptyline(self):
        pass

    def default(self, line):
        print(f"Unknown command: {line}. Type 'help' for available commands.")


def run_cli(terminal: WeighbridgeTerminal):
    """Launch the interactive CLI console."""
    console = WeighbridgeConsole(terminal)
    try:
        console.cmdloop()
    except KeyboardInterrupt:
        print("\nInterrupted.")


def main():
    """Entry point for standalone CLI usage."""
    from weighbridge.config.scale_models import PRESET_SCALE_MODELS, DEFAULT_MODEL_ID
    from weighbridge.config.settings import TerminalSettings
    from weighbridge.drivers.simulator import ScaleSimulator

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    # Memory-only terminal with a simulated indicator
    sim = ScaleSimulator()
    settings = TerminalSettings(port="sim://indicator", drafts_dir="")
    terminal = WeighbridgeTerminal(
        PRESET_SCALE_MODELS[DEFAULT_MODEL_ID],
        settings=settings,
        simulator=sim,
    )

    terminal.start()
    try:
        run_cli(terminal)
    finally:
        terminal.stop()


if __name__ == "__main__":
    main()

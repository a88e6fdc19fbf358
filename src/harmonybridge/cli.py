"""Command-line entry point for the harmony bridge."""

import argparse
import logging
import sys
import threading
from collections.abc import Sequence
from typing import TextIO

from harmonybridge.base.errors import BridgeError, ConfigError
from harmonybridge.base.hub import HubClient
from harmonybridge.base.state import ActuationOutcome, InferredState
from harmonybridge.config import BridgeConfig

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="harmonybridge",
        description="Drive IR/RF appliances through a remote hub, "
        "judging their state from smart-plug power readings.",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity (default: INFO)",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    list_cmd = commands.add_parser(
        "commands", help="List the hub's devices and their commands"
    )
    list_cmd.add_argument("--hub", required=True, help="Hub IP address")

    run_cmd = commands.add_parser("run", help="Run the bridge until Ctrl+C")
    run_cmd.add_argument("config", help="Path to the JSON configuration")

    set_cmd = commands.add_parser(
        "set", help="Drive one device on or off and wait for the result"
    )
    set_cmd.add_argument("config", help="Path to the JSON configuration")
    set_cmd.add_argument("device", help="Device name from the configuration")
    set_cmd.add_argument("state", choices=["on", "off"])
    return parser


def print_commands(hub: HubClient, out: TextIO | None = None) -> None:
    """Print each device's control groups with their indices.

    The indices are what ``power_command`` in the configuration refers
    to.
    """
    out = out or sys.stdout
    for device in hub.get_available_commands():
        print(f"{device.label} (id {device.id or '?'})", file=out)
        for g, group in enumerate(device.control_group):
            print(f"  [{g}] {group.name}", file=out)
            for f, function in enumerate(group.function):
                print(
                    f"      [{g}, {f}] {function.name or function.label}",
                    file=out,
                )


def run_commands(address: str) -> int:
    from harmonybridge.environments.harmony import HarmonyHub

    hub = HarmonyHub(address=address)
    try:
        print_commands(hub)
    finally:
        hub.close()
    return 0


def run_bridge(config: BridgeConfig) -> int:
    from harmonybridge.platform import Platform

    platform = Platform(config)
    platform.start()
    logger.info("Bridge running (press Ctrl+C to stop)")
    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        logger.info("Stopping bridge...")
    finally:
        platform.stop()
    return 0


def run_set(config: BridgeConfig, name: str, state: str) -> int:
    from harmonybridge.platform import Platform

    platform = Platform(config)
    try:
        controller = platform.controller(name)
    except KeyError as e:
        logger.error(str(e.args[0]))
        return 2

    done = threading.Event()
    outcomes: list[ActuationOutcome] = []

    def finished(outcome: ActuationOutcome) -> None:
        outcomes.append(outcome)
        done.set()

    controller.add_outcome_listener(finished)
    platform.start()
    try:
        loop = controller.request(InferredState(state))
        if loop is None:
            print(f"{name} is already {state}")
            return 0
        done.wait()
    except KeyboardInterrupt:
        controller.stop()
        return 1
    finally:
        platform.stop()

    outcome = outcomes[0]
    print(
        f"{name}: {outcome.phase.value} after {outcome.attempts} "
        f"attempt(s) ({outcome.reason})"
    )
    return 0 if outcome.succeeded else 1


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.command == "commands":
            return run_commands(args.hub)

        config = BridgeConfig.load(args.config)
        if args.command == "run":
            return run_bridge(config)
        return run_set(config, args.device, args.state)
    except ConfigError as e:
        logger.error(str(e))
        return 2
    except BridgeError as e:
        logger.error(f"{e.__class__.__name__}: {e}")
        return 1

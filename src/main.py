"""
Main entry point for the lab engine.

Replays an event script through a LabSession and prints the final
snapshot as JSON.

Usage:
    # Command line
    python main.py mass_density --events run.json --csv results.csv

    # Programmatic
    from main import run_script
    session, results = run_script("minor_head_loss", events)
"""

import argparse
import json
import logging
import os
import sys
from pathlib import Path

from pydantic import ValidationError

from config import AppConfig, ensure_directories, load_config
from events import WaitEvent, parse_script
from experiments import EXPERIMENTS
from logging_utils import LoggerAdapter, get_logger, level_from_name, set_level
from session import EngineResult, LabSession

logger = get_logger(__name__)


def run_script(
    experiment: str,
    events: list[dict],
    config: AppConfig | None = None,
    seed: int | None = None,
    verbose: bool = True,
) -> tuple[LabSession, list[EngineResult]]:
    """
    Replay a list of wire events against a fresh session.

    "wait" events advance the simulated clock by their seconds, or until
    no process is pending when seconds is omitted.

    Raises:
        pydantic.ValidationError: If the script contains a malformed event.
    """
    log = LoggerAdapter(logger, verbose=verbose)
    session = LabSession.create(experiment, config=config, seed=seed)
    results = []

    for wire in parse_script(events):
        if isinstance(wire, WaitEvent):
            if wire.seconds is None:
                fired = session.scheduler.run_all()
            else:
                fired = session.scheduler.advance(wire.seconds)
            log.debug(f"wait: {fired} process(es) completed")
            continue

        result = session.dispatch(wire.to_event())
        results.append(result)
        status = "ok" if result.ok else (result.error.value if result.error else "rejected")
        log(f"{wire.type}: {status} -> {session.state.step.name}")
        if result.validation is not None:
            verdict = "pass" if result.validation.is_within_tolerance else "fail"
            log(f"  {result.validation.field_name} = {result.validation.submitted_value} ({verdict})")

    return session, results


def main():
    """Command-line interface."""
    parser = argparse.ArgumentParser(
        description="Guided lab procedure engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python main.py mass_density --events inputs/mass_density_run.json
    python main.py minor_head_loss --events run.json --csv head_loss.csv --verbose
        """
    )
    parser.add_argument(
        "experiment",
        type=str,
        help=f"Experiment name ({', '.join(sorted(EXPERIMENTS))})"
    )
    parser.add_argument(
        "--events",
        type=str,
        required=True,
        help="Path to JSON event script (a list of events)"
    )
    parser.add_argument(
        "--csv",
        type=str,
        default=None,
        help="Write the measurement ledger to this CSV file"
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Seed for simulated room temperature"
    )
    parser.add_argument(
        "--show-answers",
        action="store_true",
        help="Include expected answers in the output"
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging"
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to config JSON file"
    )

    args = parser.parse_args()

    config = load_config(args.config) if args.config else load_config()
    set_level(logging.DEBUG if args.verbose else level_from_name(config.log_level))

    events_path = Path(args.events)
    if not events_path.exists():
        print(f"Error: Event script not found: {args.events}")
        sys.exit(1)

    try:
        events = json.loads(events_path.read_text(encoding="utf-8"))
        session, results = run_script(args.experiment, events, config=config, seed=args.seed)
    except KeyError as e:
        print(f"Error: {e.args[0]}")
        sys.exit(1)
    except (json.JSONDecodeError, ValidationError) as e:
        print(f"Error: Invalid event script: {e}")
        sys.exit(1)

    snapshot = session.snapshot()
    if args.show_answers:
        snapshot["reference_answers"] = session.reference_answers()

    if args.csv:
        csv_path = args.csv
        if not os.path.isabs(csv_path) and os.path.dirname(csv_path) == "":
            ensure_directories(config)
            csv_path = os.path.join(config.paths.export_dir, csv_path)
        session.ledger.write_csv(csv_path)

    print(json.dumps(snapshot, indent=2, default=str, ensure_ascii=False))
    sys.exit(0 if all(r.error is None for r in results) else 2)


if __name__ == "__main__":
    main()

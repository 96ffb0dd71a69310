from __future__ import annotations

import argparse
import csv
import logging
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from sponsor_raffle.config import configure_logging, get_settings
from sponsor_raffle.database import Base, SessionLocal, engine
from sponsor_raffle.loaders import (
    load_cars,
    load_drives,
    load_prize_declarations,
    load_winner_history,
)
from sponsor_raffle.services import (
    DONE,
    build_report,
    conduct_raffle,
    import_winner_history,
    record_outcome,
    registry_history,
    registry_last_race,
    winner_rows,
)


logger = logging.getLogger(__name__)


def _open_session():
    Base.metadata.create_all(bind=engine)
    return SessionLocal()


def run_draw(args: argparse.Namespace) -> int:
    settings = get_settings()
    data_dir = Path(args.data_dir)

    cars = load_cars(data_dir / args.cars)
    result_files = args.results or ["results1.csv", "results2.csv", "results3.csv"]
    drives = load_drives([data_dir / name for name in result_files], settings.car_class)
    if not drives:
        print("no results found, exiting")
        return 1
    declarations = load_prize_declarations(data_dir / args.sponsors)

    history = []
    winners_path = data_dir / args.winners
    if winners_path.exists():
        history = load_winner_history(winners_path)

    db = _open_session() if (args.record or args.registry_history) else None
    try:
        if db is not None and args.registry_history:
            history = registry_history(db) + history

        last_race = args.last_race
        if last_race is None:
            last_race = max((record.race_id for record in history), default=0)

        run = conduct_raffle(cars, drives, declarations, history, settings=settings, seed=args.seed)
        outcome = run.outcome

        event_id = None
        if db is not None and args.record:
            if outcome.status == DONE:
                event = record_outcome(
                    db, args.event, outcome.awarded, last_race=last_race, recorded_by=args.recorded_by
                )
                db.commit()
                event_id = event.id
            else:
                logger.error("Draw did not complete; nothing recorded for %s", args.event)
    finally:
        if db is not None:
            db.close()

    report = build_report(args.event, run, registry_event_id=event_id)
    summary = report.summary
    print(f"{summary.total_prizes} prizes")
    print(f"{summary.total_drives} drives by {summary.unique_drivers} drivers")
    print(f"{summary.unique_winners} unique winners")
    print(f"{len(summary.duplicate_winners)} duplicate winners")
    for duplicate in summary.duplicate_winners:
        print(f"  {duplicate.driver_name}: {duplicate.wins}")
    if outcome.unawarded:
        print(f"ERROR: Still could not award all prizes after {outcome.round_count} rounds!")
    print("")
    for line in report.results:
        print(line)
    print("")

    sponsors: List[str] = []
    for declaration in declarations:
        if declaration.sponsor_name not in sponsors:
            sponsors.append(declaration.sponsor_name)
    writer = csv.writer(sys.stdout)
    writer.writerows(winner_rows(outcome.awarded, last_race, args.event, sponsors))

    if args.json:
        Path(args.json).write_text(report.model_dump_json(indent=2), encoding="utf-8")
        print(f"wrote report to {args.json}")

    return 0 if outcome.status == DONE else 2


def run_import_history(args: argparse.Namespace) -> int:
    records = load_winner_history(args.winners)
    db = _open_session()
    try:
        written = import_winner_history(db, records, recorded_by=args.recorded_by)
        db.commit()
        last_race = registry_last_race(db)
    finally:
        db.close()
    print(f"wrote {written} awards to the registry (last race {last_race})")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sponsor-raffle",
        description="Draw sponsor prizes for a race weekend.",
    )
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    subparsers = parser.add_subparsers(dest="command", required=True)

    draw = subparsers.add_parser("draw", help="Run the raffle for one weekend")
    draw.add_argument("--event", required=True, help="Event name used in the winners sheet")
    draw.add_argument("--data-dir", default=".", help="Directory holding the input CSV files")
    draw.add_argument("--cars", default="cars.csv")
    draw.add_argument("--sponsors", default="sponsors.csv")
    draw.add_argument("--winners", default="winners.csv")
    draw.add_argument(
        "--results",
        action="append",
        help="Race result file, in race order; repeat per race (default results1-3.csv)",
    )
    draw.add_argument("--seed", type=int, default=None, help="Seed for a reproducible draw")
    draw.add_argument("--last-race", type=int, default=None, help="Season race number before this weekend")
    draw.add_argument("--registry-history", action="store_true", help="Add registry winners to the history")
    draw.add_argument("--record", action="store_true", help="Store the awards in the registry")
    draw.add_argument("--recorded-by", default="")
    draw.add_argument("--json", default=None, help="Write the JSON report to this path")
    draw.set_defaults(handler=run_draw)

    history = subparsers.add_parser("import-history", help="Load a winners sheet into the registry")
    history.add_argument("--winners", required=True)
    history.add_argument("--recorded-by", default="")
    history.set_defaults(handler=run_import_history)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    return args.handler(args)


if __name__ == "__main__":
    sys.exit(main())

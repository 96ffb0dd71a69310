from __future__ import annotations

import logging
import random
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from fastapi import HTTPException
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from sponsor_raffle.config import Settings, get_settings
from sponsor_raffle.models import RegistryAward, RegistryEvent, RegistryRace
from sponsor_raffle.rules import (
    RACE,
    WEEKEND,
    Car,
    Drive,
    HistoryRecord,
    Prize,
    PrizeAward,
    PrizeDeclaration,
    RaffleContext,
    WinnerHistory,
    candidates,
    index_history,
    payout_for_participation,
    race_drive_counts,
    shuffle_prizes,
)
from sponsor_raffle.schemas import (
    DuplicateWinnerOut,
    PrizeAwardOut,
    PrizeOut,
    RaffleReport,
    RaffleSummaryOut,
)


logger = logging.getLogger(__name__)

DRAWING = "drawing"
DONE = "done"
FAILED = "failed"


@dataclass
class RoundResults:
    awarded: List[PrizeAward]
    unawarded: List[Prize]


@dataclass
class RaffleOutcome:
    status: str
    awarded: List[PrizeAward]
    unawarded: List[Prize]
    rounds: List[RoundResults] = field(default_factory=list)

    @property
    def round_count(self) -> int:
        return len(self.rounds)


@dataclass(frozen=True)
class RaffleSummary:
    total_prizes: int
    total_drives: int
    unique_drivers: int
    unique_winners: int
    duplicate_winners: List[Tuple[str, int]]


@dataclass
class RaffleRun:
    prizes: List[Prize]
    drives: List[Drive]
    outcome: RaffleOutcome
    unknown_car_drives: List[Drive] = field(default_factory=list)
    unknown_sponsors: List[str] = field(default_factory=list)


def build_context(
    cars: Mapping[str, Car],
    history: WinnerHistory = (),
    settings: Optional[Settings] = None,
    seed: Optional[int] = None,
) -> RaffleContext:
    settings = settings or get_settings()
    return RaffleContext(
        cars=cars,
        history=history,
        cooldown_sponsor=settings.cooldown_sponsor,
        cooldown_lookback=settings.cooldown_lookback,
        max_rounds=settings.max_rounds,
        rng=random.Random(seed),
    )


def build_prize_catalog(
    declarations: Iterable[PrizeDeclaration],
    drives: Sequence[Drive],
    context: RaffleContext,
) -> List[Prize]:
    """
    Expand sponsor declarations into one Prize per unit and shuffle them into
    draw order. Per-race prizes are replicated for every race that has drives.
    """
    counts = race_drive_counts(drives)
    race_ids = sorted(counts)

    prizes: List[Prize] = []
    for declaration in declarations:
        for race_id in race_ids:
            amount = declaration.per_race_amount
            if declaration.sponsor_name == context.cooldown_sponsor:
                amount = payout_for_participation(counts[race_id])
                if amount == 0:
                    # Too few drives in this race for the sponsor to pay out.
                    logger.info(
                        "No %s prizes for race %s (%d drives)",
                        declaration.sponsor_name,
                        race_id,
                        counts[race_id],
                    )
                    continue
            for _ in range(declaration.per_race_count):
                prizes.append(
                    Prize(
                        sponsor_name=declaration.sponsor_name,
                        prize_type=declaration.prize_type,
                        frequency=RACE,
                        amount=amount,
                        race_id=race_id,
                    )
                )
        for _ in range(declaration.per_weekend_count):
            prizes.append(
                Prize(
                    sponsor_name=declaration.sponsor_name,
                    prize_type=declaration.prize_type,
                    frequency=WEEKEND,
                    amount=declaration.per_weekend_amount,
                )
            )

    return shuffle_prizes(prizes, context.rng)


def validate_cars_and_drives(cars: Mapping[str, Car], drives: Sequence[Drive]) -> List[Drive]:
    missing = [drive for drive in drives if drive.car_number not in cars]
    if missing:
        logger.warning(
            "Some drives were in an unknown car: %s",
            ", ".join(f"{d.driver_name} #{d.car_number} (race {d.race_id})" for d in missing),
        )
    return missing


def validate_sponsor_names(
    cars: Mapping[str, Car], declarations: Sequence[PrizeDeclaration]
) -> List[str]:
    known = set()
    for car in cars.values():
        known.update(car.stickers)
    unknown = sorted({d.sponsor_name for d in declarations} - known)
    if unknown:
        logger.warning("No car carries a sticker for: %s", ", ".join(unknown))
    return unknown


def draw_round(
    prior_awards: Sequence[PrizeAward],
    prize_pool: Sequence[Prize],
    drives: Sequence[Drive],
    context: RaffleContext,
) -> RoundResults:
    """
    Draw every prize in ``prize_pool`` once, in the given order.
    A prize with no eligible drive is set aside as unawarded.
    """
    round_winners: List[str] = []
    round_awards: List[PrizeAward] = []
    unawarded: List[Prize] = []

    for prize in prize_pool:
        pool = candidates(
            prize,
            drives,
            round_winners,
            [*prior_awards, *round_awards],
            context,
        )
        if not pool:
            unawarded.append(prize)
            continue
        winner = pool[context.rng.randrange(len(pool))]
        round_winners.append(winner.driver_name)
        round_awards.append(PrizeAward(prize=prize, winner=winner))

    return RoundResults(awarded=round_awards, unawarded=unawarded)


def run_raffle(
    prizes: Sequence[Prize],
    drives: Sequence[Drive],
    context: RaffleContext,
) -> RaffleOutcome:
    """
    Draw rounds until every prize is awarded or the round cap is reached.
    Each new round makes every driver eligible again, except for sponsors
    they already won from.
    """
    awarded: List[PrizeAward] = []
    unawarded: List[Prize] = list(prizes)
    rounds: List[RoundResults] = []

    status = DRAWING
    round_number = 1
    while status == DRAWING:
        if not unawarded:
            status = DONE
        elif round_number > context.max_rounds:
            status = FAILED
        else:
            logger.info("Running round %d for %d prizes", round_number, len(unawarded))
            result = draw_round(awarded, unawarded, drives, context)
            awarded.extend(result.awarded)
            unawarded = result.unawarded
            rounds.append(result)
            round_number += 1

    if status == FAILED:
        logger.error(
            "Still could not award %d prizes after %d rounds",
            len(unawarded),
            len(rounds),
        )
    return RaffleOutcome(status=status, awarded=awarded, unawarded=unawarded, rounds=rounds)


def conduct_raffle(
    cars: Mapping[str, Car],
    drives: Sequence[Drive],
    declarations: Sequence[PrizeDeclaration],
    history_records: Iterable[HistoryRecord] = (),
    settings: Optional[Settings] = None,
    seed: Optional[int] = None,
) -> RaffleRun:
    """
    Validate the inputs, build the prize catalog and run the draw.
    """
    context = build_context(cars, index_history(history_records), settings, seed)
    unknown_car_drives = validate_cars_and_drives(cars, drives)
    unknown_sponsors = validate_sponsor_names(cars, declarations)
    prizes = build_prize_catalog(declarations, drives, context)
    logger.info("Loaded %d prizes for %d drives", len(prizes), len(drives))
    return RaffleRun(
        prizes=prizes,
        drives=list(drives),
        outcome=run_raffle(prizes, drives, context),
        unknown_car_drives=unknown_car_drives,
        unknown_sponsors=unknown_sponsors,
    )


def summarize_raffle(
    prizes: Sequence[Prize], drives: Sequence[Drive], awarded: Sequence[PrizeAward]
) -> RaffleSummary:
    win_counts: Dict[str, int] = {}
    for award in awarded:
        win_counts[award.winner.driver_name] = win_counts.get(award.winner.driver_name, 0) + 1
    drivers = {drive.driver_name for drive in drives}
    duplicates = sorted(
        ((name, count) for name, count in win_counts.items() if count > 1),
        key=lambda item: item[1],
    )
    return RaffleSummary(
        total_prizes=len(prizes),
        total_drives=len(drives),
        unique_drivers=len(drivers),
        unique_winners=len(win_counts),
        duplicate_winners=duplicates,
    )


def prize_label(prize: Prize) -> str:
    frequency_text = f"(Race #{prize.race_id})" if prize.race_id is not None else "(Weekend)"
    if float(prize.amount).is_integer():
        amount = f"{int(prize.amount):,}"
    else:
        amount = f"{prize.amount:,.2f}"
    return f"{prize.sponsor_name.lstrip('_')} -- ${amount} {prize.prize_type} {frequency_text}"


def group_results(
    awarded: Sequence[PrizeAward], unawarded: Sequence[Prize] = ()
) -> Dict[str, List[Drive]]:
    grouped: Dict[str, List[Drive]] = defaultdict(list)
    for award in awarded:
        grouped[prize_label(award.prize)].append(award.winner)
    for prize in unawarded:
        grouped.setdefault(prize_label(prize), [])
    return dict(grouped)


def present_results(awarded: Sequence[PrizeAward], unawarded: Sequence[Prize] = ()) -> List[str]:
    grouped = group_results(awarded, unawarded)
    lines = []
    for key in sorted(grouped):
        winners = grouped[key]
        if not winners:
            lines.append(f"{key}: Unclaimed")
            continue
        lines.append(f"{key}: " + ", ".join(f"{w.driver_name} #{w.car_number}" for w in winners))
    return lines


def build_report(
    event_name: str, run: RaffleRun, registry_event_id: Optional[int] = None
) -> RaffleReport:
    outcome = run.outcome
    summary = summarize_raffle(run.prizes, run.drives, outcome.awarded)
    return RaffleReport(
        event_name=event_name,
        status=outcome.status,
        rounds=outcome.round_count,
        summary=RaffleSummaryOut(
            total_prizes=summary.total_prizes,
            total_drives=summary.total_drives,
            unique_drivers=summary.unique_drivers,
            unique_winners=summary.unique_winners,
            duplicate_winners=[
                DuplicateWinnerOut(driver_name=name, wins=wins)
                for name, wins in summary.duplicate_winners
            ],
        ),
        awarded=[PrizeAwardOut.from_domain(a) for a in outcome.awarded],
        unawarded=[PrizeOut.from_domain(p) for p in outcome.unawarded],
        results=present_results(outcome.awarded, outcome.unawarded),
        unknown_car_drives=[f"{d.driver_name} #{d.car_number}" for d in run.unknown_car_drives],
        registry_event_id=registry_event_id,
    )


def winner_rows(
    awarded: Sequence[PrizeAward],
    last_race: int,
    event_name: str,
    sponsors: Sequence[str],
) -> List[List[str]]:
    """
    Rows for the winners sheet: the weekend rows first, then one block per
    race numbered from ``last_race``. Several prizes from one sponsor spill
    onto extra rows; extra weekend rows repeat the event name so they still
    read back as weekend winners.
    """
    weekend: Dict[str, List[PrizeAward]] = defaultdict(list)
    by_race: Dict[int, Dict[str, List[PrizeAward]]] = defaultdict(lambda: defaultdict(list))
    for award in awarded:
        if award.prize.frequency == WEEKEND:
            weekend[award.prize.sponsor_name].append(award)
        else:
            by_race[last_race + award.prize.race_id][award.prize.sponsor_name].append(award)

    def cell(award: Optional[PrizeAward]) -> str:
        if award is None:
            return ""
        return f"{award.winner.driver_name} ({award.prize.prize_type})"

    rows: List[List[str]] = []
    weekend_depth = max((len(weekend[s]) for s in sponsors), default=0) or 1
    for i in range(weekend_depth):
        rows.append(
            [
                event_name,
                "",
                *(cell(weekend[s][i] if i < len(weekend[s]) else None) for s in sponsors),
            ]
        )
    for race_number in sorted(by_race):
        entry = by_race[race_number]
        depth = max((len(entry[s]) for s in sponsors), default=0) or 1
        for i in range(depth):
            race_text = f"Race {race_number}" if i == 0 else ""
            rows.append(
                [
                    "",
                    race_text,
                    *(cell(entry[s][i] if i < len(entry[s]) else None) for s in sponsors),
                ]
            )
    return rows


def get_or_404(db: Session, model: Any, obj_id: int, label: str):
    obj = db.get(model, obj_id)
    if not obj:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return obj


def get_event_or_404(db: Session, event_id: int) -> RegistryEvent:
    return get_or_404(db, RegistryEvent, event_id, "Event")


def upsert_event(db: Session, name: str, recorded_by: str = "") -> RegistryEvent:
    existing = db.scalar(select(RegistryEvent).where(RegistryEvent.name == name))
    if existing:
        return existing
    created = RegistryEvent(name=name, recorded_by=recorded_by)
    db.add(created)
    db.flush()
    return created


def upsert_race(db: Session, event: RegistryEvent, race_number: int) -> RegistryRace:
    existing = db.scalar(
        select(RegistryRace).where(
            RegistryRace.event_id == event.id,
            RegistryRace.race_number == race_number,
        )
    )
    if existing:
        return existing
    created = RegistryRace(event_id=event.id, race_number=race_number)
    db.add(created)
    db.flush()
    return created


def registry_last_race(db: Session) -> int:
    value = db.scalar(select(func.max(RegistryRace.race_number)))
    return int(value) if value is not None else 0


def record_outcome(
    db: Session,
    event_name: str,
    awarded: Sequence[PrizeAward],
    last_race: Optional[int] = None,
    recorded_by: str = "",
) -> RegistryEvent:
    """
    Store every award of a finished draw. Race prizes are filed under season
    race numbers, counted on from ``last_race`` (the registry's last race when
    omitted).
    """
    if last_race is None:
        last_race = registry_last_race(db)
    event = upsert_event(db, event_name, recorded_by)
    for award in awarded:
        race = None
        if award.prize.race_id is not None:
            race = upsert_race(db, event, last_race + award.prize.race_id)
        db.add(
            RegistryAward(
                event=event,
                race=race,
                driver_name=award.winner.driver_name,
                car_number=award.winner.car_number,
                sponsor_name=award.prize.sponsor_name,
                prize_type=award.prize.prize_type,
                amount=float(award.prize.amount),
            )
        )
    db.flush()
    return event


def import_winner_history(
    db: Session, records: Iterable[HistoryRecord], recorded_by: str = ""
) -> int:
    """
    Copy winners-sheet rows into the registry. Returns the number of awards
    written.
    """
    written = 0
    for record in records:
        event = upsert_event(db, record.event_name or "Unknown event", recorded_by)
        race = None
        if not record.is_weekend:
            race = upsert_race(db, event, record.race_id)
        for sponsor_name, driver_name in record.winners.items():
            if not driver_name:
                continue
            db.add(
                RegistryAward(
                    event=event,
                    race=race,
                    driver_name=driver_name,
                    sponsor_name=sponsor_name,
                )
            )
            written += 1
    db.flush()
    return written


def _slot_records(
    race_number: int,
    event_name: str,
    awards: Iterable[RegistryAward],
    is_weekend: bool = False,
) -> List[HistoryRecord]:
    slots: List[Dict[str, str]] = []
    for award in awards:
        for slot in slots:
            if award.sponsor_name not in slot:
                slot[award.sponsor_name] = award.driver_name
                break
        else:
            slots.append({award.sponsor_name: award.driver_name})
    return [
        HistoryRecord(race_id=race_number, event_name=event_name, winners=slot, is_weekend=is_weekend)
        for slot in slots
    ]


def registry_history(db: Session) -> List[HistoryRecord]:
    """
    Rebuild winners-sheet style history from the registry: one record per
    race and prize slot, so a sponsor that paid out twice in a race shows up
    in two records. Weekend awards land where the sheet puts them, under the
    last race of the events recorded before theirs, or under the race just
    before their event's first race when nothing earlier is recorded.
    """
    events = db.scalars(select(RegistryEvent).order_by(RegistryEvent.id.asc())).all()

    history: List[HistoryRecord] = []
    last_race = 0
    for event in events:
        races = sorted(event.races, key=lambda race: race.race_number)
        weekend = sorted(event.weekend_awards, key=lambda award: award.id)
        if weekend:
            anchor = last_race or (races[0].race_number - 1 if races else 0)
            history.extend(_slot_records(anchor, event.name, weekend, is_weekend=True))
        for race in races:
            awards = sorted(race.awards, key=lambda award: award.id)
            history.extend(_slot_records(race.race_number, event.name, awards))
        if races:
            last_race = max(last_race, races[-1].race_number)
    return history


def _award_payload(award: RegistryAward) -> dict[str, Any]:
    return {
        "driver_name": award.driver_name,
        "car_number": award.car_number,
        "sponsor_name": award.sponsor_name,
        "prize_type": award.prize_type,
        "amount": award.amount,
    }


def list_events(db: Session) -> list[dict[str, Any]]:
    rows = db.scalars(select(RegistryEvent).order_by(RegistryEvent.id.asc())).all()
    return [
        {
            "id": e.id,
            "name": e.name,
            "recorded_by": e.recorded_by,
            "race_count": len(e.races),
            "award_count": len(e.awards),
        }
        for e in rows
    ]


def event_detail(db: Session, event_id: int) -> dict[str, Any]:
    event = get_event_or_404(db, event_id)
    races = sorted(event.races, key=lambda r: r.race_number)
    return {
        "id": event.id,
        "name": event.name,
        "recorded_by": event.recorded_by,
        "weekend_awards": sorted(
            (_award_payload(a) for a in event.weekend_awards), key=lambda a: a["driver_name"]
        ),
        "races": [
            {
                "race_number": race.race_number,
                "awards": sorted(
                    (_award_payload(a) for a in race.awards), key=lambda a: a["driver_name"]
                ),
            }
            for race in races
        ],
    }

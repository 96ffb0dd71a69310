from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple


RACE = "race"
WEEKEND = "weekend"

DEFAULT_COOLDOWN_SPONSOR = "Toyo"
DEFAULT_COOLDOWN_LOOKBACK = 9
DEFAULT_MAX_ROUNDS = 5


@dataclass(frozen=True)
class Car:
    number: str
    stickers: frozenset[str] = frozenset()
    driver_name: str = ""

    def has_sticker(self, sponsor_name: str) -> bool:
        return sponsor_name in self.stickers


@dataclass(frozen=True)
class Drive:
    driver_name: str
    car_number: str
    race_id: int


@dataclass(frozen=True)
class Prize:
    sponsor_name: str
    prize_type: str
    frequency: str
    amount: float
    race_id: Optional[int] = None

    def __post_init__(self) -> None:
        if self.frequency not in (RACE, WEEKEND):
            raise ValueError(f"Unknown prize frequency: {self.frequency}")
        if self.frequency == WEEKEND and self.race_id is not None:
            raise ValueError("Weekend prizes cannot be tied to a race")
        if self.frequency == RACE and self.race_id is None:
            raise ValueError("Race prizes need a race id")


@dataclass(frozen=True)
class PrizeDeclaration:
    sponsor_name: str
    prize_type: str
    per_race_amount: float = 0.0
    per_race_count: int = 0
    per_weekend_amount: float = 0.0
    per_weekend_count: int = 0


@dataclass(frozen=True)
class PrizeAward:
    prize: Prize
    winner: Drive


@dataclass(frozen=True)
class HistoryRecord:
    """
    One row of the winners sheet: per-sponsor winning driver names for a race
    (or for the weekend when ``is_weekend`` is set).
    """

    race_id: int
    event_name: str = ""
    winners: Mapping[str, str] = field(default_factory=dict)
    is_weekend: bool = False

    def winner_for(self, sponsor_name: str) -> Optional[str]:
        return self.winners.get(sponsor_name) or None


WinnerHistory = Sequence[Sequence[HistoryRecord]]


@dataclass
class RaffleContext:
    """
    Everything one raffle run needs besides the prize pool and the drives.
    """

    cars: Mapping[str, Car]
    history: WinnerHistory = ()
    cooldown_sponsor: str = DEFAULT_COOLDOWN_SPONSOR
    cooldown_lookback: int = DEFAULT_COOLDOWN_LOOKBACK
    max_rounds: int = DEFAULT_MAX_ROUNDS
    rng: random.Random = field(default_factory=random.Random)


def index_history(records: Iterable[HistoryRecord]) -> List[Tuple[HistoryRecord, ...]]:
    """
    Arrange history records by race number. Slot 0 is the pre-season slot, so
    the list length is the last race number + 1. Missing races are empty.
    """
    by_race: Dict[int, List[HistoryRecord]] = {}
    for record in records:
        by_race.setdefault(record.race_id, []).append(record)
    if not by_race:
        return []
    last_race = max(by_race)
    return [tuple(by_race.get(race_id, [])) for race_id in range(last_race + 1)]


def cooldown_window(history_length: int, lookback: int = DEFAULT_COOLDOWN_LOOKBACK) -> range:
    window_size = min(history_length - 1, lookback)
    window_start = history_length - window_size
    # Negative sizes give start > end, which is an empty range.
    return range(window_start, history_length)


def in_cooldown(
    driver_name: str,
    history: WinnerHistory,
    sponsor_name: str = DEFAULT_COOLDOWN_SPONSOR,
    lookback: int = DEFAULT_COOLDOWN_LOOKBACK,
) -> bool:
    """
    True when the driver won ``sponsor_name``'s prize in one of the last
    ``lookback`` races. With a 9 race lookback no driver wins the sponsor's
    prize more than twice in a season.
    """
    for race_index in cooldown_window(len(history), lookback):
        for record in history[race_index]:
            if record.winner_for(sponsor_name) == driver_name:
                return True
    return False


def has_sticker(cars: Mapping[str, Car], car_number: str, sponsor_name: str) -> bool:
    car = cars.get(car_number)
    return car is not None and car.has_sticker(sponsor_name)


def candidates(
    prize: Prize,
    drives: Sequence[Drive],
    round_winners: Iterable[str],
    round_awards: Sequence[PrizeAward],
    context: RaffleContext,
) -> List[Drive]:
    """
    Drives that may win ``prize`` given who already won this round and which
    (driver, sponsor) pairs are already taken.
    """
    won_this_round = set(round_winners)
    sponsor_winners = {
        award.winner.driver_name
        for award in round_awards
        if award.prize.sponsor_name == prize.sponsor_name
    }
    check_cooldown = prize.sponsor_name == context.cooldown_sponsor

    eligible: List[Drive] = []
    for drive in drives:
        if prize.race_id is not None and drive.race_id != prize.race_id:
            continue
        if not has_sticker(context.cars, drive.car_number, prize.sponsor_name):
            continue
        if drive.driver_name in won_this_round or drive.driver_name in sponsor_winners:
            continue
        if check_cooldown and in_cooldown(
            drive.driver_name,
            context.history,
            context.cooldown_sponsor,
            context.cooldown_lookback,
        ):
            continue
        eligible.append(drive)
    return eligible


def payout_for_participation(drive_count: int) -> int:
    """
    Cooldown sponsor's per-race payout, scaled by how many drives the race had.
    """
    if drive_count <= 2:
        return 0
    if drive_count <= 5:
        return 85
    if drive_count <= 10:
        return 175
    if drive_count <= 15:
        return 265
    if drive_count <= 20:
        return 355
    if drive_count <= 24:
        return 440
    if drive_count <= 30:
        return 550
    return 600


def shuffle_prizes(prizes: Sequence[Prize], rng: random.Random) -> List[Prize]:
    """
    Fisher-Yates shuffle into a new list. Draw order decides who is still in
    the pool for later prizes, so it must not be predictable.
    """
    shuffled = list(prizes)
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randint(0, i)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def race_drive_counts(drives: Iterable[Drive]) -> Dict[int, int]:
    counts: Dict[int, int] = {}
    for drive in drives:
        counts[drive.race_id] = counts.get(drive.race_id, 0) + 1
    return counts

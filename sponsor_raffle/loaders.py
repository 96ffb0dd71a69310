from __future__ import annotations

import csv
import logging
import re
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Union

from sponsor_raffle.rules import Car, Drive, HistoryRecord, PrizeDeclaration


logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

FALSY_FLAGS = {"", "0", "false", "no", "n", "f"}
RACE_LABEL = re.compile(r"^race\s+(\d+)$", re.IGNORECASE)
TRAILING_NOTE = re.compile(r"\(.*\)$")
DID_NOT_START = "DNS"


class LoaderError(ValueError):
    pass


def is_flag_set(value: str) -> bool:
    return value.strip().lower() not in FALSY_FLAGS


def _number(value: str, path: PathLike, line_no: int, label: str) -> float:
    text = value.strip()
    if not text:
        return 0.0
    try:
        return float(text.lstrip("$").replace(",", ""))
    except ValueError as exc:
        raise LoaderError(f"{path}:{line_no}: {label} is not a number: {value!r}") from exc


def _count(value: str, path: PathLike, line_no: int, label: str) -> int:
    number = _number(value, path, line_no, label)
    if number < 0 or number != int(number):
        raise LoaderError(f"{path}:{line_no}: {label} must be a whole number: {value!r}")
    return int(number)


def _is_blank(row: Sequence[str]) -> bool:
    return not any(cell.strip() for cell in row)


def load_cars(path: PathLike) -> Dict[str, Car]:
    """
    Header: ``number, driver, all, <sponsor>, <sponsor>, ...``. Any non-empty,
    non-"no" value marks a sticker; a set ``all`` column grants every sponsor.
    """
    with open(path, newline="", encoding="utf-8-sig") as fh:
        reader = csv.reader(fh)
        header = next(reader, None)
        if header is None:
            return {}
        sponsors = [name.strip() for name in header[3:]]

        cars: Dict[str, Car] = {}
        for line_no, row in enumerate(reader, start=2):
            if _is_blank(row):
                continue
            if len(row) < 2:
                raise LoaderError(f"{path}:{line_no}: expected at least number and driver")
            has_all = len(row) > 2 and is_flag_set(row[2])
            stickers = frozenset(
                sponsor
                for sponsor, flag in zip(sponsors, list(row[3:]) + [""] * len(sponsors))
                if sponsor and (has_all or is_flag_set(flag))
            )
            car = Car(number=row[0].strip(), driver_name=row[1].strip(), stickers=stickers)
            cars[car.number] = car
    logger.info("Loaded %d cars from %s", len(cars), path)
    return cars


def _clean_result_cell(value: str) -> str:
    return value.strip().strip('"').strip()


def load_race_results(path: PathLike, race_id: int, car_class: str) -> List[Drive]:
    """
    RaceHero export columns: driver, position, (skipped), number, class, gap.
    Only drives in ``car_class`` that started the race are kept.
    """
    drives: List[Drive] = []
    with open(path, newline="", encoding="utf-8-sig") as fh:
        for row in csv.reader(fh):
            columns = [_clean_result_cell(value) for value in row]
            if len(columns) < 6:
                continue
            driver_name, car_number, row_class, gap = columns[0], columns[3], columns[4], columns[5]
            if row_class != car_class or gap == DID_NOT_START:
                continue
            drives.append(Drive(driver_name=driver_name, car_number=car_number, race_id=race_id))
    return drives


def load_drives(paths: Sequence[PathLike], car_class: str) -> List[Drive]:
    """
    Race ids follow the order of ``paths``, starting at 1. Missing files are
    skipped.
    """
    drives: List[Drive] = []
    for race_id, path in enumerate(paths, start=1):
        if not Path(path).exists():
            logger.info("No results for race %d at %s", race_id, path)
            continue
        race_drives = load_race_results(path, race_id, car_class)
        logger.info("Loaded %d drives for race %d", len(race_drives), race_id)
        drives.extend(race_drives)
    return drives


def load_prize_declarations(path: PathLike) -> List[PrizeDeclaration]:
    """
    Columns: sponsor, type, races, per race amount, per race count, weekends,
    per weekend count, per weekend amount.
    """
    declarations: List[PrizeDeclaration] = []
    with open(path, newline="", encoding="utf-8-sig") as fh:
        reader = csv.reader(fh)
        next(reader, None)
        for line_no, row in enumerate(reader, start=2):
            if _is_blank(row):
                continue
            cells = [value.strip() for value in row] + [""] * (8 - len(row))
            if not cells[0]:
                raise LoaderError(f"{path}:{line_no}: missing sponsor name")
            declarations.append(
                PrizeDeclaration(
                    sponsor_name=cells[0],
                    prize_type=cells[1],
                    per_race_amount=_number(cells[3], path, line_no, "per race amount"),
                    per_race_count=_count(cells[4], path, line_no, "per race count"),
                    per_weekend_count=_count(cells[6], path, line_no, "per weekend count"),
                    per_weekend_amount=_number(cells[7], path, line_no, "per weekend amount"),
                )
            )
    return declarations


def _clean_winner_cell(value: str) -> str:
    return TRAILING_NOTE.sub("", value.strip()).strip()


def parse_winner_rows(rows: Iterable[Sequence[str]], sponsors: Sequence[str]) -> List[HistoryRecord]:
    """
    Rows are ``event, race, <winner per sponsor>...``. ``Race 12`` in the race
    column starts race 12; a blank race column continues the current race,
    unless the row names an event, in which case it holds that event's
    weekend winners.
    """
    records: List[HistoryRecord] = []
    current_race = 0
    current_event = ""
    for row in rows:
        values = [_clean_winner_cell(value) for value in row]
        if _is_blank(values):
            continue
        values += [""] * (2 + len(sponsors) - len(values))
        event_name, race_label = values[0], values[1]

        is_weekend = False
        match = RACE_LABEL.match(race_label)
        if match:
            current_race = int(match.group(1))
            if event_name:
                current_event = event_name
        elif event_name:
            current_event = event_name
            is_weekend = True

        winners = {
            sponsor: name for sponsor, name in zip(sponsors, values[2:]) if sponsor and name
        }
        if not winners:
            continue
        records.append(
            HistoryRecord(
                race_id=current_race,
                event_name=current_event,
                winners=winners,
                is_weekend=is_weekend,
            )
        )
    return records


def load_winner_history(path: PathLike, sponsors: Optional[Sequence[str]] = None) -> List[HistoryRecord]:
    """
    The first row is the header (``event, race, <sponsor>...``) and the second
    an example row; both are skipped.
    """
    with open(path, newline="", encoding="utf-8-sig") as fh:
        reader = csv.reader(fh)
        header = next(reader, None)
        if header is None:
            return []
        next(reader, None)
        if sponsors is None:
            sponsors = [name.strip() for name in header[2:]]
        records = parse_winner_rows(reader, sponsors)
    logger.info("Loaded %d winner rows from %s", len(records), path)
    return records

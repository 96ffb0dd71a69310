from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field

from sponsor_raffle.rules import Car, Drive, HistoryRecord, Prize, PrizeAward, PrizeDeclaration


class CarIn(BaseModel):
    number: str = Field(min_length=1, max_length=16)
    driver_name: str = Field(default="", max_length=128)
    stickers: list[str] = Field(default_factory=list)

    def to_domain(self) -> Car:
        return Car(
            number=self.number.strip(),
            driver_name=self.driver_name.strip(),
            stickers=frozenset(s.strip() for s in self.stickers if s.strip()),
        )


class DriveIn(BaseModel):
    driver_name: str = Field(min_length=1, max_length=128)
    car_number: str = Field(min_length=1, max_length=16)
    race_id: int = Field(ge=1)

    def to_domain(self) -> Drive:
        return Drive(
            driver_name=self.driver_name.strip(),
            car_number=self.car_number.strip(),
            race_id=self.race_id,
        )


class PrizeDeclarationIn(BaseModel):
    sponsor_name: str = Field(min_length=1, max_length=128)
    prize_type: str = Field(default="", max_length=64)
    per_race_amount: float = Field(default=0, ge=0)
    per_race_count: int = Field(default=0, ge=0)
    per_weekend_amount: float = Field(default=0, ge=0)
    per_weekend_count: int = Field(default=0, ge=0)

    def to_domain(self) -> PrizeDeclaration:
        return PrizeDeclaration(
            sponsor_name=self.sponsor_name.strip(),
            prize_type=self.prize_type.strip(),
            per_race_amount=self.per_race_amount,
            per_race_count=self.per_race_count,
            per_weekend_amount=self.per_weekend_amount,
            per_weekend_count=self.per_weekend_count,
        )


class HistoryRecordIn(BaseModel):
    race_id: int = Field(ge=0)
    event_name: str = Field(default="", max_length=128)
    winners: dict[str, str] = Field(default_factory=dict)
    is_weekend: bool = False

    def to_domain(self) -> HistoryRecord:
        return HistoryRecord(
            race_id=self.race_id,
            event_name=self.event_name,
            winners=dict(self.winners),
            is_weekend=self.is_weekend,
        )


class RaffleRequest(BaseModel):
    event_name: str = Field(min_length=1, max_length=128)
    cars: list[CarIn]
    drives: list[DriveIn]
    prizes: list[PrizeDeclarationIn]
    history: list[HistoryRecordIn] = Field(default_factory=list)
    seed: Optional[int] = None
    use_registry_history: bool = False
    record: bool = False
    recorded_by: str = Field(default="", max_length=128)
    last_race: Optional[int] = Field(default=None, ge=0)


class PrizeOut(BaseModel):
    sponsor_name: str
    prize_type: str
    frequency: Literal["race", "weekend"]
    amount: float
    race_id: Optional[int] = None

    @classmethod
    def from_domain(cls, prize: Prize) -> "PrizeOut":
        return cls(
            sponsor_name=prize.sponsor_name,
            prize_type=prize.prize_type,
            frequency=prize.frequency,
            amount=prize.amount,
            race_id=prize.race_id,
        )


class PrizeAwardOut(BaseModel):
    prize: PrizeOut
    driver_name: str
    car_number: str
    race_id: int

    @classmethod
    def from_domain(cls, award: PrizeAward) -> "PrizeAwardOut":
        return cls(
            prize=PrizeOut.from_domain(award.prize),
            driver_name=award.winner.driver_name,
            car_number=award.winner.car_number,
            race_id=award.winner.race_id,
        )


class DuplicateWinnerOut(BaseModel):
    driver_name: str
    wins: int


class RaffleSummaryOut(BaseModel):
    total_prizes: int
    total_drives: int
    unique_drivers: int
    unique_winners: int
    duplicate_winners: list[DuplicateWinnerOut]


class RaffleReport(BaseModel):
    event_name: str
    status: Literal["done", "failed"]
    rounds: int
    summary: RaffleSummaryOut
    awarded: list[PrizeAwardOut]
    unawarded: list[PrizeOut]
    results: list[str]
    unknown_car_drives: list[str] = Field(default_factory=list)
    registry_event_id: Optional[int] = None

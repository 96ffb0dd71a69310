from __future__ import annotations

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

from sponsor_raffle.config import configure_logging, get_settings
from sponsor_raffle.database import Base, engine, get_db
from sponsor_raffle.schemas import HistoryRecordIn, RaffleReport, RaffleRequest
from sponsor_raffle.services import (
    DONE,
    build_report,
    conduct_raffle,
    event_detail,
    list_events,
    record_outcome,
    registry_history,
)


app = FastAPI(
    title="Sponsor Raffle",
    version="1.0.0",
    description=(
        "Draws sponsor prizes for a race weekend, weighted by participation, "
        "and keeps the season's award registry."
    ),
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def on_startup() -> None:
    configure_logging()
    Base.metadata.create_all(bind=engine)


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/raffles", response_model=RaffleReport)
def create_raffle(payload: RaffleRequest, db: Session = Depends(get_db)):
    cars = {}
    for car_in in payload.cars:
        car = car_in.to_domain()
        cars[car.number] = car
    drives = [d.to_domain() for d in payload.drives]
    declarations = [p.to_domain() for p in payload.prizes]
    history = [h.to_domain() for h in payload.history]
    if payload.use_registry_history:
        history = registry_history(db) + history

    run = conduct_raffle(
        cars,
        drives,
        declarations,
        history,
        settings=get_settings(),
        seed=payload.seed,
    )

    event_id = None
    # Only complete draws go into the registry; a failed draw is reported but not filed.
    if payload.record and run.outcome.status == DONE:
        event = record_outcome(
            db,
            payload.event_name.strip(),
            run.outcome.awarded,
            last_race=payload.last_race,
            recorded_by=payload.recorded_by.strip(),
        )
        db.commit()
        event_id = event.id

    return build_report(payload.event_name.strip(), run, registry_event_id=event_id)


@app.get("/events")
def get_events(db: Session = Depends(get_db)):
    return list_events(db)


@app.get("/events/{event_id}")
def get_event(event_id: int, db: Session = Depends(get_db)):
    return event_detail(db, event_id)


@app.get("/history", response_model=list[HistoryRecordIn])
def get_history(db: Session = Depends(get_db)):
    return [
        HistoryRecordIn(
            race_id=record.race_id,
            event_name=record.event_name,
            winners=dict(record.winners),
            is_weekend=record.is_weekend,
        )
        for record in registry_history(db)
    ]

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from sponsor_raffle.database import Base, get_db
from sponsor_raffle.main import app


def _client() -> TestClient:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=True, autocommit=False)

    def override_get_db():
        db = SessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)


def _payload(**overrides):
    payload = {
        "event_name": "Sonoma",
        "cars": [
            {"number": "1", "stickers": ["X", "Toyo"]},
            {"number": "2", "stickers": ["Y"]},
        ],
        "drives": [
            {"driver_name": "A", "car_number": "1", "race_id": 1},
            {"driver_name": "B", "car_number": "2", "race_id": 1},
        ],
        "prizes": [
            {"sponsor_name": "X", "prize_type": "cash", "per_race_amount": 50, "per_race_count": 1},
            {"sponsor_name": "Y", "prize_type": "cash", "per_weekend_amount": 75, "per_weekend_count": 1},
        ],
        "seed": 4,
    }
    payload.update(overrides)
    return payload


def test_health():
    client = _client()
    assert client.get("/health").json() == {"status": "ok"}
    app.dependency_overrides.clear()


def test_raffle_records_and_feeds_history():
    client = _client()

    res = client.post("/raffles", json=_payload(record=True, recorded_by="steward", last_race=6))
    assert res.status_code == 200
    body = res.json()
    assert body["status"] == "done"
    assert body["rounds"] == 1
    assert body["summary"]["unique_winners"] == 2
    assert {(a["prize"]["sponsor_name"], a["driver_name"]) for a in body["awarded"]} == {("X", "A"), ("Y", "B")}
    assert body["registry_event_id"] is not None

    events = client.get("/events").json()
    assert [e["name"] for e in events] == ["Sonoma"]

    detail = client.get(f"/events/{body['registry_event_id']}").json()
    assert [r["race_number"] for r in detail["races"]] == [7]
    assert [a["driver_name"] for a in detail["weekend_awards"]] == ["B"]

    history = client.get("/history").json()
    assert history == [
        {"race_id": 6, "event_name": "Sonoma", "winners": {"Y": "B"}, "is_weekend": True},
        {"race_id": 7, "event_name": "Sonoma", "winners": {"X": "A"}, "is_weekend": False},
    ]

    app.dependency_overrides.clear()


def test_failed_raffle_is_reported_but_not_recorded():
    client = _client()
    payload = _payload(
        prizes=[{"sponsor_name": "Nobody", "prize_type": "cash", "per_weekend_amount": 5, "per_weekend_count": 1}],
        record=True,
    )

    body = client.post("/raffles", json=payload).json()

    assert body["status"] == "failed"
    assert body["rounds"] == 5
    assert body["awarded"] == []
    assert body["unawarded"][0]["sponsor_name"] == "Nobody"
    assert body["registry_event_id"] is None
    assert client.get("/events").json() == []

    app.dependency_overrides.clear()


def test_invalid_payload_is_rejected():
    client = _client()
    res = client.post("/raffles", json=_payload(drives=[{"driver_name": "A", "car_number": "1", "race_id": 0}]))
    assert res.status_code == 422
    app.dependency_overrides.clear()


def test_unknown_event_is_404():
    client = _client()
    assert client.get("/events/42").status_code == 404
    app.dependency_overrides.clear()

from sponsor_raffle.config import get_settings


def test_defaults(monkeypatch):
    for name in ("RAFFLE_COOLDOWN_SPONSOR", "RAFFLE_COOLDOWN_LOOKBACK", "RAFFLE_MAX_ROUNDS", "RAFFLE_CAR_CLASS"):
        monkeypatch.delenv(name, raising=False)

    settings = get_settings()

    assert settings.cooldown_sponsor == "Toyo"
    assert settings.cooldown_lookback == 9
    assert settings.max_rounds == 5
    assert settings.car_class == "PRO3"


def test_round_cap_below_one_falls_back_to_default(monkeypatch):
    monkeypatch.setenv("RAFFLE_MAX_ROUNDS", "0")
    assert get_settings().max_rounds == 5

    monkeypatch.setenv("RAFFLE_MAX_ROUNDS", "-2")
    assert get_settings().max_rounds == 5

    monkeypatch.setenv("RAFFLE_MAX_ROUNDS", "ten")
    assert get_settings().max_rounds == 5

    monkeypatch.setenv("RAFFLE_MAX_ROUNDS", "3")
    assert get_settings().max_rounds == 3


def test_zero_lookback_is_allowed(monkeypatch):
    monkeypatch.setenv("RAFFLE_COOLDOWN_LOOKBACK", "0")
    assert get_settings().cooldown_lookback == 0

    monkeypatch.setenv("RAFFLE_COOLDOWN_LOOKBACK", "-1")
    assert get_settings().cooldown_lookback == 9

import pytest

from sponsor_raffle.loaders import (
    LoaderError,
    load_cars,
    load_drives,
    load_prize_declarations,
    load_race_results,
    load_winner_history,
)
from sponsor_raffle.rules import Drive, PrizeDeclaration


def _write(path, text):
    path.write_text(text.lstrip("\n"), encoding="utf-8")
    return path


def test_load_cars_reads_sticker_columns(tmp_path):
    path = _write(
        tmp_path / "cars.csv",
        """
Number,Driver,All,_425,AAF,Toyo
7,Alice Able,,x,,x
12,Bob Baker,yes,,,
21,Cara Cole,,,no,1
""",
    )

    cars = load_cars(path)

    assert set(cars) == {"7", "12", "21"}
    assert cars["7"].stickers == frozenset({"_425", "Toyo"})
    assert cars["7"].driver_name == "Alice Able"
    assert cars["12"].stickers == frozenset({"_425", "AAF", "Toyo"})
    assert cars["21"].stickers == frozenset({"Toyo"})


def test_load_race_results_keeps_starters_in_class(tmp_path):
    path = _write(
        tmp_path / "results1.csv",
        """
"Driver","Pos","Laps","No","Class","Gap"
"Alice Able","1","20","7","PRO3","-"
"Bob Baker","2","20","12","PRO3","1.2"
"Zed Zane","3","20","88","E0","3.4"
"Cara Cole","4","0","21","PRO3","DNS"
""",
    )

    drives = load_race_results(path, 2, "PRO3")

    assert drives == [Drive("Alice Able", "7", 2), Drive("Bob Baker", "12", 2)]


def test_load_drives_skips_missing_races(tmp_path):
    _write(tmp_path / "results1.csv", "Alice,1,20,7,PRO3,-\n")
    _write(tmp_path / "results3.csv", "Bob,1,20,12,PRO3,-\n")

    drives = load_drives(
        [tmp_path / "results1.csv", tmp_path / "results2.csv", tmp_path / "results3.csv"],
        "PRO3",
    )

    assert drives == [Drive("Alice", "7", 1), Drive("Bob", "12", 3)]


def test_load_prize_declarations(tmp_path):
    path = _write(
        tmp_path / "sponsors.csv",
        """
Sponsor,Type,Races,Per Race,Per Race Count,Weekend,Per Weekend Count,Per Weekend
AAF,cash,3,$50,2,1,0,
Griots,gift card,3,25,1,1,1,100
Toyo,tire credit,3,,1,,,
""",
    )

    declarations = load_prize_declarations(path)

    assert declarations == [
        PrizeDeclaration("AAF", "cash", per_race_amount=50, per_race_count=2),
        PrizeDeclaration("Griots", "gift card", per_race_amount=25, per_race_count=1, per_weekend_amount=100, per_weekend_count=1),
        PrizeDeclaration("Toyo", "tire credit", per_race_count=1),
    ]


def test_load_prize_declarations_rejects_bad_counts(tmp_path):
    path = _write(
        tmp_path / "sponsors.csv",
        """
Sponsor,Type,Races,Per Race,Per Race Count,Weekend,Per Weekend Count,Per Weekend
AAF,cash,3,50,two,1,0,
""",
    )
    with pytest.raises(LoaderError):
        load_prize_declarations(path)


def test_load_winner_history(tmp_path):
    path = _write(
        tmp_path / "winners.csv",
        """
Event,Race,425,AAF,Toyo
Example,Race 0,Someone (cash),,
Buttonwillow,,Dan (Weekend),,
,Race 1,Alice (cash),Bob,Cara (credit)
,,,Eve,
,,,,
,Race 2,,,Alice
Sonoma,Race 3,Bob,,
""",
    )

    records = load_winner_history(path)

    assert [(r.event_name, r.race_id, r.is_weekend, dict(r.winners)) for r in records] == [
        ("Buttonwillow", 0, True, {"425": "Dan"}),
        ("Buttonwillow", 1, False, {"425": "Alice", "AAF": "Bob", "Toyo": "Cara"}),
        ("Buttonwillow", 1, False, {"AAF": "Eve"}),
        ("Buttonwillow", 2, False, {"Toyo": "Alice"}),
        ("Sonoma", 3, False, {"425": "Bob"}),
    ]


def test_missing_roster_propagates(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_cars(tmp_path / "cars.csv")

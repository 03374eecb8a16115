from datetime import datetime

import math

import pytest

from brpf.statistiques.calculs import (
    average_by_field,
    first_signed_by_demande,
    group_and_sum,
    percentage_of,
    projections,
    running_total,
    sum_by_field,
    sum_multiple_fields,
)
from brpf.statistiques.records import DecisionRecord, DecisionTarget


def test_percentage_of_never_divides_by_zero() -> None:
    for value in (0, 1, 250.5, -3):
        assert percentage_of(value, 0) == 0
    assert percentage_of(0, 40) == 0
    assert percentage_of(10, 40) == 25.0
    assert not math.isnan(percentage_of(float("nan"), 10))
    assert percentage_of(5, float("inf")) == 0


def test_sum_and_average_ignore_missing_values() -> None:
    rows = [{"m": 10}, {"m": None}, {}, {"m": 5.5}]
    assert sum_by_field(rows, "m") == 15.5
    assert average_by_field(rows, "m") == pytest.approx(15.5 / 4)
    assert average_by_field([], "m") == 0


def test_sum_multiple_fields_and_group_and_sum() -> None:
    rows = [
        {"s": "A", "ht": 100, "ttc": 120},
        {"s": "B", "ht": 50, "ttc": None},
        {"s": "A", "ht": 25, "ttc": 30},
    ]
    assert sum_multiple_fields(rows, ["ht", "ttc"]) == {"ht": 175.0, "ttc": 150.0}
    assert group_and_sum(rows, "s", "ht") == {"A": 125.0, "B": 50.0}


def test_running_total_does_not_mutate_input() -> None:
    series = [{"v": 1}, {"v": 2}, {"v": None}, {"v": 4}]
    snapshot = [dict(x) for x in series]

    assert running_total(series, "v") == [1.0, 3.0, 3.0, 7.0]
    assert running_total([3, 0, 2]) == [3.0, 3.0, 5.0]
    assert series == snapshot


def test_projections_are_chained() -> None:
    p10, p20 = projections(1000)
    assert p10 == pytest.approx(1100)
    assert p20 == pytest.approx(1320)


def test_first_signed_by_demande_takes_the_earliest_signature() -> None:
    decisions = [
        DecisionRecord(1, "AJE", datetime(2025, 3, 1), demandes=(DecisionTarget(10), DecisionTarget(11))),
        DecisionRecord(2, "PJ", datetime(2025, 2, 1), demandes=(DecisionTarget(10),)),
        DecisionRecord(3, "PJ", None, demandes=(DecisionTarget(12),)),
    ]
    first = first_signed_by_demande(decisions)

    assert first == {10: datetime(2025, 2, 1), 11: datetime(2025, 3, 1)}

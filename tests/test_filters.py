from datetime import date, datetime

from brpf.statistiques.filters import (
    MultiSelectFilter,
    NullFilter,
    QuerySpec,
    RangeFilter,
    TextFilter,
    parse_limit,
    parse_year,
    query,
)
from brpf.statistiques.records import DemandeRecord


def _demande(**kw) -> DemandeRecord:
    kw.setdefault("id", 1)
    kw.setdefault("date_reception", datetime(2025, 5, 10))
    return DemandeRecord(**kw)


def test_range_filter_is_half_open() -> None:
    spec = query().in_year("date_reception", 2025)
    assert spec.matches(_demande(date_reception=datetime(2025, 1, 1)))
    assert not spec.matches(_demande(date_reception=datetime(2026, 1, 1)))
    assert not spec.matches(_demande(date_reception=datetime(2024, 12, 31, 23, 59)))


def test_specs_are_immutable_and_conjunctive() -> None:
    base = query().in_year("date_reception", 2025)
    victimes = base.one_of("type", ["VICTIME"])

    assert base.filters != victimes.filters
    assert victimes.matches(_demande(type="VICTIME"))
    assert not victimes.matches(_demande(type="MIS_EN_CAUSE"))
    assert base.matches(_demande(type="MIS_EN_CAUSE"))


def test_text_and_null_filters() -> None:
    d = _demande(qualification_infraction="VIOLENCES hors rébellion", assigne_a_id=None)

    assert QuerySpec((TextFilter("qualification_infraction", "violences"),)).matches(d)
    assert not QuerySpec((TextFilter("qualification_infraction", "outrage"),)).matches(d)
    assert QuerySpec((NullFilter("assigne_a_id"),)).matches(d)
    assert not QuerySpec((NullFilter("assigne_a_id", is_null=False),)).matches(d)


def test_filters_on_collections_match_any_element() -> None:
    d = _demande(badges=("Motard", "Plongeur"), baps=())

    assert QuerySpec((MultiSelectFilter("badges", ("Plongeur",)),)).matches(d)
    assert not QuerySpec((MultiSelectFilter("badges", ("Cynophile",)),)).matches(d)
    assert QuerySpec((NullFilter("baps"),)).matches(d)
    assert not QuerySpec((NullFilter("badges"),)).matches(d)


def test_range_filter_rejects_missing_values() -> None:
    assert not RangeFilter("x", 1, 5).accepts(None)
    assert RangeFilter("x", None, 5).accepts(-10)


def test_parse_year_falls_back_to_current_year() -> None:
    today = date(2025, 7, 14)
    assert parse_year("2023", today) == 2023
    assert parse_year(" 2024 ", today) == 2024
    assert parse_year(None, today) == 2025
    assert parse_year("", today) == 2025
    assert parse_year("abc", today) == 2025
    assert parse_year("20x5", today) == 2025
    assert parse_year("0", today) == 2025
    assert parse_year("10000", today) == 2025


def test_parse_limit() -> None:
    assert parse_limit("5", default=10) == 5
    assert parse_limit(None, default=10) == 10
    assert parse_limit("-2", default=10) == 10
    assert parse_limit("x", default=10) == 10
    assert parse_limit("100000", default=10) == 520

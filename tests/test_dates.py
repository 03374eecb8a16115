from datetime import date, datetime, timedelta

from brpf.statistiques.dates import (
    in_range,
    iso_week,
    month_label,
    month_range,
    week_key,
    weeks_between,
    year_range,
)


def test_iso_week_matches_isocalendar_over_three_years() -> None:
    d = date(2022, 1, 1)
    while d <= date(2024, 12, 31):
        w = iso_week(d)
        iso_year, week_num, _ = d.isocalendar()
        assert (w.iso_year, w.week_num) == (iso_year, week_num), d
        d += timedelta(days=1)


def test_late_december_belongs_to_next_iso_year() -> None:
    w = iso_week(date(2024, 12, 31))
    assert (w.iso_year, w.week_num) == (2025, 1)
    assert w.start_date == date(2024, 12, 30)
    assert w.end_date == date(2025, 1, 5)


def test_early_january_belongs_to_previous_iso_year() -> None:
    w = iso_week(date(2023, 1, 1))
    assert (w.iso_year, w.week_num) == (2022, 52)

    w = iso_week(date(2021, 1, 3))
    assert (w.iso_year, w.week_num) == (2020, 53)


def test_datetime_input_is_reduced_to_its_date() -> None:
    assert iso_week(datetime(2025, 1, 2, 23, 59)).key == "2025-01"


def test_week_span_is_monday_to_sunday() -> None:
    w = iso_week(date(2025, 6, 12))  # jeudi
    assert w.start_date.weekday() == 0
    assert w.end_date.weekday() == 6
    assert w.end_date - w.start_date == timedelta(days=6)


def test_week_key_is_zero_padded() -> None:
    assert week_key(date(2025, 1, 8)) == "2025-02"
    assert week_key(date(2024, 12, 30)) == week_key(date(2025, 1, 2)) == "2025-01"


def test_weeks_between_is_dense_and_chronological() -> None:
    weeks = list(weeks_between(date(2025, 1, 1), date(2025, 12, 31)))
    keys = [w.key for w in weeks]

    assert keys[0] == "2025-01"
    assert keys[-1] == "2026-01"
    assert len(keys) == 53
    assert keys == sorted(keys)
    for prev, cur in zip(weeks, weeks[1:]):
        assert cur.start_date - prev.start_date == timedelta(days=7)


def test_year_and_month_ranges_are_half_open() -> None:
    start, end = year_range(2025)
    assert (start, end) == (datetime(2025, 1, 1), datetime(2026, 1, 1))
    assert in_range(datetime(2025, 12, 31, 23, 59, 59), start, end)
    assert not in_range(end, start, end)
    assert not in_range(None, start, end)

    assert month_range(2025, 12) == (datetime(2025, 12, 1), datetime(2026, 1, 1))
    assert month_range(2025, 2) == (datetime(2025, 2, 1), datetime(2025, 3, 1))


def test_month_labels_are_french() -> None:
    assert month_label(1) == "Janvier"
    assert month_label(8) == "Août"
    assert month_label(12) == "Décembre"

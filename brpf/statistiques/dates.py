from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterator, Tuple, Union

DateLike = Union[date, datetime]

MOIS = [
    "Janvier", "Février", "Mars", "Avril", "Mai", "Juin",
    "Juillet", "Août", "Septembre", "Octobre", "Novembre", "Décembre",
]


@dataclass(frozen=True)
class IsoWeek:
    week_num: int
    iso_year: int
    start_date: date  # lundi
    end_date: date    # dimanche

    @property
    def key(self) -> str:
        return f"{self.iso_year}-{self.week_num:02d}"


def _as_date(d: DateLike) -> date:
    if isinstance(d, datetime):
        return d.date()
    return d


def _thursday_of(d: date) -> date:
    # weekday(): lundi = 0 ... dimanche = 6
    return d + timedelta(days=3 - d.weekday())


def iso_week(d: DateLike) -> IsoWeek:
    """
    Semaine ISO-8601 d'une date.

    L'année ISO est celle du jeudi de la semaine (lundi-dimanche) ;
    la semaine 1 est celle qui contient le 4 janvier.
    """
    target = _as_date(d)
    thursday = _thursday_of(target)
    iso_year = thursday.year

    first_thursday = _thursday_of(date(iso_year, 1, 4))
    week_num = (thursday - first_thursday).days // 7 + 1

    monday = target - timedelta(days=target.weekday())
    return IsoWeek(
        week_num=week_num,
        iso_year=iso_year,
        start_date=monday,
        end_date=monday + timedelta(days=6),
    )


def week_key(d: DateLike) -> str:
    return iso_week(d).key


def weeks_between(start: DateLike, end: DateLike) -> Iterator[IsoWeek]:
    """Toutes les semaines ISO touchées par [start, end], sans trou."""
    monday = iso_week(start).start_date
    last = _as_date(end)
    while monday <= last:
        yield iso_week(monday)
        monday += timedelta(days=7)


def year_range(year: int) -> Tuple[datetime, datetime]:
    """[1er janvier, 1er janvier suivant) : borne haute exclue."""
    return datetime(year, 1, 1), datetime(year + 1, 1, 1)


def month_range(year: int, month: int) -> Tuple[datetime, datetime]:
    """month de 1 à 12 ; borne haute exclue."""
    if month == 12:
        return datetime(year, 12, 1), datetime(year + 1, 1, 1)
    return datetime(year, month, 1), datetime(year, month + 1, 1)


def month_label(month: int) -> str:
    return MOIS[month - 1]


def in_range(value: DateLike | None, start: datetime, end: datetime) -> bool:
    if value is None:
        return False
    if not isinstance(value, datetime):
        value = datetime(value.year, value.month, value.day)
    return start <= value < end

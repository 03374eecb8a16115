"""
Spécifications de requêtes composables.

Un `QuerySpec` est une conjonction de filtres typés (plage, sélection
multiple, texte libre, nullité). Le store SQL les traduit en critères
SQLAlchemy ; `QuerySpec.matches` les évalue en mémoire sur les records.
Sur un champ multi-valué (tuple), un filtre est vrai si au moins une des
valeurs le satisfait.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Iterable, Optional, Tuple, Union

from .dates import year_range


@dataclass(frozen=True)
class RangeFilter:
    field: str
    gte: Any = None
    lt: Any = None

    def accepts(self, value: Any) -> bool:
        if value is None:
            return False
        if self.gte is not None and value < self.gte:
            return False
        if self.lt is not None and value >= self.lt:
            return False
        return True


@dataclass(frozen=True)
class MultiSelectFilter:
    field: str
    values: Tuple[Any, ...] = ()

    def accepts(self, value: Any) -> bool:
        return value in self.values


@dataclass(frozen=True)
class TextFilter:
    field: str
    text: str = ""

    def accepts(self, value: Any) -> bool:
        needle = (self.text or "").strip().lower()
        if not needle:
            return True
        return needle in str(value or "").lower()


@dataclass(frozen=True)
class NullFilter:
    field: str
    is_null: bool = True

    def accepts(self, value: Any) -> bool:
        return (value is None) == self.is_null


Filter = Union[RangeFilter, MultiSelectFilter, TextFilter, NullFilter]


def _read(record: Any, name: str) -> Any:
    if isinstance(record, dict):
        return record.get(name)
    return getattr(record, name, None)


@dataclass(frozen=True)
class QuerySpec:
    filters: Tuple[Filter, ...] = field(default_factory=tuple)

    def where(self, *filters: Filter) -> "QuerySpec":
        return QuerySpec(self.filters + tuple(filters))

    def between(self, name: str, gte: Any = None, lt: Any = None) -> "QuerySpec":
        return self.where(RangeFilter(name, gte, lt))

    def in_year(self, name: str, year: int) -> "QuerySpec":
        start, end = year_range(year)
        return self.between(name, start, end)

    def one_of(self, name: str, values: Iterable[Any]) -> "QuerySpec":
        return self.where(MultiSelectFilter(name, tuple(values)))

    def contains(self, name: str, text: str) -> "QuerySpec":
        return self.where(TextFilter(name, text))

    def is_null(self, name: str, is_null: bool = True) -> "QuerySpec":
        return self.where(NullFilter(name, is_null))

    def matches(self, record: Any) -> bool:
        for flt in self.filters:
            value = _read(record, flt.field)
            if isinstance(value, (tuple, list, set, frozenset)):
                # NullFilter sur une collection : "vide" / "non vide"
                if isinstance(flt, NullFilter):
                    if (len(value) == 0) != flt.is_null:
                        return False
                    continue
                if not any(flt.accepts(v) for v in value):
                    return False
            elif not flt.accepts(value):
                return False
        return True


def query() -> QuerySpec:
    return QuerySpec()


# ---------------------------
# Paramètres HTTP
# ---------------------------

def parse_year(value: Any, today: Optional[date] = None) -> int:
    """Année demandée ; l'année courante si le paramètre est absent ou invalide."""
    current = (today or datetime.now().date()).year
    if value is None:
        return current
    try:
        year = int(str(value).strip())
    except (TypeError, ValueError):
        return current
    # datetime(year + 1, 1, 1) doit rester construisible
    if year < 1 or year > 9998:
        return current
    return year


def parse_limit(value: Any, default: int, maximum: int = 520) -> int:
    try:
        limit = int(str(value).strip())
    except (TypeError, ValueError):
        return default
    if limit <= 0:
        return default
    return min(limit, maximum)

"""
Agrégations génériques des statistiques.

Fonctions pures sur des collections déjà chargées : elles ne modifient
jamais leurs entrées. Une valeur absente (None, champ manquant, NaN)
compte pour 0.
"""
from __future__ import annotations

import math
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Sequence, Tuple

PREVISION_10 = 1.10
PREVISION_20 = 1.20


def _value(item: Any, field: str) -> Any:
    if isinstance(item, Mapping):
        return item.get(field)
    return getattr(item, field, None)


def _number(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        n = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(n):
        return 0.0
    return n


def sum_by_field(records: Iterable[Any], field: str) -> float:
    return sum((_number(_value(r, field)) for r in records), 0.0)


def average_by_field(records: Sequence[Any], field: str) -> float:
    if not records:
        return 0.0
    return sum_by_field(records, field) / len(records)


def sum_multiple_fields(records: Sequence[Any], fields: Iterable[str]) -> Dict[str, float]:
    return {f: sum_by_field(records, f) for f in fields}


def group_and_sum(records: Iterable[Any], group_field: str, value_field: str) -> Dict[Any, float]:
    groups: Dict[Any, float] = {}
    for r in records:
        key = _value(r, group_field)
        groups[key] = groups.get(key, 0.0) + _number(_value(r, value_field))
    return groups


def running_total(series: Iterable[Any], field: str | None = None) -> List[float]:
    """Cumul : l'élément i vaut la somme des éléments 0..i.

    Sans `field`, la série contient directement des nombres.
    """
    out: List[float] = []
    acc = 0.0
    for item in series:
        acc += _number(item if field is None else _value(item, field))
        out.append(acc)
    return out


def percentage_of(value: Any, base: Any) -> float:
    b = _number(base)
    if b <= 0:
        return 0.0
    return _number(value) / b * 100.0


def projections(amount: float) -> Tuple[float, float]:
    """Prévisionnels +10 % puis +20 % appliqués sur le +10 %."""
    p10 = _number(amount) * PREVISION_10
    return p10, p10 * PREVISION_20


def first_signed_by_demande(decisions: Iterable[Any]) -> Dict[int, datetime]:
    """
    Date de la première décision signée de chaque demande.

    Chaque décision porte `date_signature` et `demande_ids` ; une décision
    sans date de signature est ignorée.
    """
    first: Dict[int, datetime] = {}
    for decision in decisions:
        signed = _value(decision, "date_signature")
        if signed is None:
            continue
        for demande_id in _value(decision, "demande_ids") or ():
            current = first.get(demande_id)
            if current is None or signed < current:
                first[demande_id] = signed
    return first

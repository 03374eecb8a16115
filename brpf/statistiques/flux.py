from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from .calculs import first_signed_by_demande, sum_by_field
from .dates import IsoWeek, iso_week, month_label, month_range, weeks_between, year_range, in_range
from .filters import RangeFilter, query
from .store import StatistiquesStore

LIBELLE_MOYENNE = "MOYENNE / MOIS"


# ---------------------------
# Helpers
# ---------------------------

def _extended_window(year: int) -> tuple[datetime, datetime]:
    # Semaines à cheval : du 20 décembre précédent au 10 janvier suivant
    return datetime(year - 1, 12, 20), datetime(year + 1, 1, 10)


def _reception_dates(store: StatistiquesStore, start: datetime, end: datetime) -> List[datetime]:
    return [d.date_reception for d in store.demandes(query().between("date_reception", start, end))]


def _first_signatures(store: StatistiquesStore, start: datetime, end: datetime) -> Dict[int, datetime]:
    """
    Première signature de chaque demande reçue dans [start, end).

    Le minimum porte sur toutes les décisions signées de la demande, quelle
    que soit leur date.
    """
    ids = {d.id for d in store.demandes(query().between("date_reception", start, end))}
    decisions = store.decisions(
        query()
        .is_null("date_signature", False)
        .where(RangeFilter("demandes_dates_reception", start, end))
    )
    first = first_signed_by_demande(decisions)
    return {k: v for k, v in first.items() if k in ids}


def _week_row(week: IsoWeek) -> Dict[str, Any]:
    return {
        "cle": week.key,
        "semaine": week.week_num,
        "iso_annee": week.iso_year,
        "date_debut": week.start_date,
        "date_fin": week.end_date,
        "entrants": 0,
        "sortants": 0,
        "difference": 0,
        "stock": 0,
    }


def _fill_weeks(
    weeks: Iterable[IsoWeek],
    entrees: Iterable[datetime],
    sorties: Iterable[datetime],
) -> List[Dict[str, Any]]:
    """Série hebdomadaire dense, stock cumulé sur toute la série."""
    rows: Dict[str, Dict[str, Any]] = {w.key: _week_row(w) for w in weeks}

    for dt in entrees:
        row = rows.get(iso_week(dt).key)
        if row is not None:
            row["entrants"] += 1

    for dt in sorties:
        row = rows.get(iso_week(dt).key)
        if row is not None:
            row["sortants"] += 1

    ordered = [rows[k] for k in sorted(rows)]
    stock = 0
    for row in ordered:
        row["difference"] = row["entrants"] - row["sortants"]
        stock += row["difference"]
        row["stock"] = stock
    return ordered


def _most_recent(rows: List[Dict[str, Any]], limit: Optional[int]) -> List[Dict[str, Any]]:
    if not limit:
        return list(rows)
    return list(reversed(rows[-limit:]))


# ---------------------------
# Flux hebdomadaires
# ---------------------------

def compute_flux_hebdomadaires(
    store: StatistiquesStore,
    year: int,
    limit: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Entrées / sorties par semaine ISO pour toutes les semaines qui touchent
    l'année civile, avec le stock cumulé.

    Le stock est calculé sur la série complète avant l'application de
    `limit` (N dernières semaines, de la plus récente à la plus ancienne).
    """
    start, end = year_range(year)
    weeks = list(weeks_between(start, end - timedelta(days=1)))

    ext_start, ext_end = _extended_window(year)
    entrees = _reception_dates(store, ext_start, ext_end)
    sorties = list(_first_signatures(store, start, end).values())

    rows = _fill_weeks(weeks, entrees, sorties)

    # Entrants N-1 : même numéro de semaine ISO
    prev_start, prev_end = _extended_window(year - 1)
    previous: Dict[int, int] = {}
    for dt in _reception_dates(store, prev_start, prev_end):
        w = iso_week(dt)
        if w.iso_year == year - 1:
            previous[w.week_num] = previous.get(w.week_num, 0) + 1
    for row in rows:
        row["entrants_annee_precedente"] = previous.get(row["semaine"], 0) if row["iso_annee"] == year else 0

    return {
        "flux_hebdomadaires": _most_recent(rows, limit),
        "total_semaines": len(rows),
        "annee": year,
        "annee_precedente": year - 1,
    }


def compute_recent_weekly(
    store: StatistiquesStore,
    limit: int = 10,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """Dernières semaines glissantes (encart du tableau de bord)."""
    today = today or datetime.now().date()
    start = datetime(today.year - 2, 1, 1)
    end = datetime(today.year + 1, 1, 1)

    weeks = list(weeks_between(start, today))
    entrees = _reception_dates(store, start, end)
    decisions = store.decisions(query().between("date_signature", start, end))
    sorties = list(first_signed_by_demande(decisions).values())

    rows = _fill_weeks(weeks, entrees, sorties)
    return {
        "semaines": _most_recent(rows, limit),
        "total_semaines": len(rows),
    }


# ---------------------------
# Flux mensuels
# ---------------------------

def compute_flux_mensuels(store: StatistiquesStore, year: int) -> Dict[str, Any]:
    start, end = year_range(year)
    prev_start, prev_end = year_range(year - 1)

    entrees = _reception_dates(store, start, end)
    entrees_prec = _reception_dates(store, prev_start, prev_end)
    sorties = list(_first_signatures(store, start, end).values())

    rows: List[Dict[str, Any]] = []
    for month in range(1, 13):
        m_start, m_end = month_range(year, month)
        p_start, p_end = month_range(year - 1, month)
        rows.append(
            {
                "mois": month_label(month),
                "entrants_annee": sum(1 for dt in entrees if in_range(dt, m_start, m_end)),
                "sortants_annee": sum(1 for dt in sorties if in_range(dt, m_start, m_end)),
                "entrants_annee_precedente": sum(1 for dt in entrees_prec if in_range(dt, p_start, p_end)),
            }
        )

    moyennes = {
        "mois": LIBELLE_MOYENNE,
        "entrants_annee": sum_by_field(rows, "entrants_annee") / 12,
        "sortants_annee": sum_by_field(rows, "sortants_annee") / 12,
        "entrants_annee_precedente": sum_by_field(rows, "entrants_annee_precedente") / 12,
    }

    return {
        "flux_mensuels": rows,
        "moyennes": moyennes,
        "annee": year,
        "annee_precedente": year - 1,
    }

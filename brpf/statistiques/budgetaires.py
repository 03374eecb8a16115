"""
Statistiques budgétaires : engagements (conventions / avenants) et dépenses
ordonnées (paiements), rapportés à l'enveloppe annuelle.

Les montants sont cumulés en pleine précision ; l'arrondi est fait à la
sérialisation.
"""
from __future__ import annotations

from collections import defaultdict
from typing import Any, Dict, List, Optional, Sequence

from .calculs import average_by_field, percentage_of, projections, running_total, sum_by_field
from .dates import in_range, month_label, month_range
from .filters import query
from .records import ConventionRecord, PaiementRecord
from .store import StatistiquesStore

# Approximation TVA des engagements mensuels (pas de montant TTC sur les conventions)
TAUX_TTC = 1.20

LIBELLE_TOTAL = "TOTAL"
SANS_PCE = "Sans PCE assigné"


def resolve_budget_total(store: StatistiquesStore, year: int) -> float:
    budget = store.budget_annuel(year)
    return budget.total if budget else 0.0


def _with_amount(records: Sequence[Any]) -> List[Any]:
    return [r for r in records if getattr(r, "montant_ht", None) is not None]


def _montant_previsions(montant: float, budget_total: float) -> Dict[str, float]:
    p10, p20 = projections(montant)
    return {
        "pourcentage": percentage_of(montant, budget_total),
        "prevision_10": p10,
        "pourcentage_prevision_10": percentage_of(p10, budget_total),
        "prevision_20": p20,
        "pourcentage_prevision_20": percentage_of(p20, budget_total),
    }


# ---------------------------
# Engagements
# ---------------------------

def compute_statistiques_budgetaires(store: StatistiquesStore, year: int) -> Dict[str, Any]:
    budget_total = resolve_budget_total(store, year)

    created = store.conventions(query().in_year("date_creation", year))
    signed = store.conventions(query().in_year("date_retour_signe", year))

    conv_created = [c for c in created if c.type == "CONVENTION"]
    av_created = [c for c in created if c.type == "AVENANT"]

    montant_signe = sum_by_field(signed, "montant_ht")
    montant_total = sum_by_field(created, "montant_ht")

    statistiques: List[Dict[str, Any]] = [
        {"libelle": "Dossiers toutes années", "nombre": store.count_dossiers(query()), "type": "number"},
        {
            "libelle": f"Dossiers {year}",
            "nombre": store.count_dossiers(query().in_year("created_at", year)),
            "type": "number",
        },
        {"libelle": "Conventions créées", "nombre": len(conv_created), "type": "number"},
        {
            "libelle": "Conventions signées (avocat)",
            "nombre": sum(1 for c in signed if c.type == "CONVENTION"),
            "type": "number",
        },
        {"libelle": "Avenants créés", "nombre": len(av_created), "type": "number"},
        {
            "libelle": "Avenants signés (avocat)",
            "nombre": sum(1 for c in signed if c.type == "AVENANT"),
            "type": "number",
        },
        {
            "libelle": "Montant moyen gagé par convention",
            "nombre": average_by_field(_with_amount(conv_created), "montant_ht"),
            "type": "currency",
        },
        {
            "libelle": "Montant moyen gagé par avenant",
            "nombre": average_by_field(_with_amount(av_created), "montant_ht"),
            "type": "currency",
        },
        {
            "libelle": "Montant HT gagé (signés)",
            "nombre": montant_signe,
            "type": "currency_with_percentage",
            **_montant_previsions(montant_signe, budget_total),
        },
        {
            "libelle": "Montant HT gagé total",
            "nombre": montant_total,
            "type": "currency_with_percentage",
            "is_total": True,
            **_montant_previsions(montant_total, budget_total),
        },
    ]
    return {"statistiques": statistiques, "budget_total": budget_total}


def compute_engagement_service_payeur(store: StatistiquesStore, year: int) -> Dict[str, Any]:
    budget_total = resolve_budget_total(store, year)
    conventions = store.conventions(query().in_year("date_creation", year))

    by_sgami: Dict[int, List[ConventionRecord]] = defaultdict(list)
    for c in conventions:
        if c.sgami_id is not None:
            by_sgami[c.sgami_id].append(c)

    engagements = []
    for sgami in store.sgamis():
        montant = sum_by_field(by_sgami.get(sgami.id, []), "montant_ht")
        if montant <= 0:
            continue
        engagements.append({"sgami": sgami.libelle, "montant_total": montant, **_montant_previsions(montant, budget_total)})

    engagements.sort(key=lambda r: r["montant_total"], reverse=True)
    return {"engagements": engagements, "budget_total": budget_total}


def compute_engagements_mensuels(store: StatistiquesStore, year: int) -> Dict[str, Any]:
    """
    Montants gagés par mois de création des conventions, cumul HT et
    estimation TTC (HT x 1.20).
    """
    budget_total = resolve_budget_total(store, year)
    conventions = store.conventions(query().in_year("date_creation", year))

    mensuels: List[float] = []
    for month in range(1, 13):
        start, end = month_range(year, month)
        mensuels.append(sum_by_field([c for c in conventions if in_range(c.date_creation, start, end)], "montant_ht"))

    cumul_ht = running_total(mensuels)
    cumul_ttc = running_total(m * TAUX_TTC for m in mensuels)

    rows: List[Dict[str, Any]] = []
    for i, montant in enumerate(mensuels):
        p10, p20 = projections(montant)
        rows.append(
            {
                "mois": month_label(i + 1),
                "montant_gage_ht": montant,
                "pourcentage_montant_gage": percentage_of(montant, budget_total),
                "cumule_ht": cumul_ht[i],
                "pourcentage_cumule_ht": percentage_of(cumul_ht[i], budget_total),
                "prevision_10": p10,
                "pourcentage_prevision_10": percentage_of(p10, budget_total),
                "prevision_20": p20,
                "pourcentage_prevision_20": percentage_of(p20, budget_total),
                "cumule_ttc": cumul_ttc[i],
                "pourcentage_cumule_ttc": percentage_of(cumul_ttc[i], budget_total),
            }
        )

    total_gage = sum(mensuels)
    p10, p20 = projections(total_gage)
    total = {
        "mois": LIBELLE_TOTAL,
        "montant_gage_ht": total_gage,
        "pourcentage_montant_gage": percentage_of(total_gage, budget_total),
        "cumule_ht": cumul_ht[-1],
        "pourcentage_cumule_ht": percentage_of(cumul_ht[-1], budget_total),
        "prevision_10": p10,
        "pourcentage_prevision_10": percentage_of(p10, budget_total),
        "prevision_20": p20,
        "pourcentage_prevision_20": percentage_of(p20, budget_total),
        "cumule_ttc": cumul_ttc[-1],
        "pourcentage_cumule_ttc": percentage_of(cumul_ttc[-1], budget_total),
    }

    return {"engagements_mensuels": rows, "total": total, "budget_total": budget_total, "annee": year}


# ---------------------------
# Dépenses ordonnées
# ---------------------------

def _paiements_of_year(store: StatistiquesStore, year: int) -> List[PaiementRecord]:
    return store.paiements(query().in_year("created_at", year))


def compute_depenses_ordonnees(store: StatistiquesStore, year: int) -> Dict[str, Any]:
    budget_total = resolve_budget_total(store, year)
    paiements = _paiements_of_year(store, year)

    total_ht = sum_by_field(paiements, "montant_ht")
    total_ttc = sum_by_field(paiements, "montant_ttc")
    nb_paiements = len(paiements)
    nb_dossiers = len({p.dossier_id for p in paiements if p.dossier_id is not None})

    statistiques = [
        {"libelle": "Nombre de paiements émis", "nombre": nb_paiements, "type": "number"},
        {
            "libelle": "Montant moyen TTC par paiement",
            "nombre": total_ttc / nb_paiements if nb_paiements else 0.0,
            "type": "currency",
        },
        {
            "libelle": "Montant moyen TTC par dossier",
            "nombre": total_ttc / nb_dossiers if nb_dossiers else 0.0,
            "type": "currency",
        },
        {
            "libelle": "Dépense totale HT (indicatif)",
            "nombre": total_ht,
            "pourcentage": percentage_of(total_ht, budget_total),
            "type": "currency_with_percentage",
        },
        {
            "libelle": "Dépense totale TTC",
            "nombre": total_ttc,
            "pourcentage": percentage_of(total_ttc, budget_total),
            "type": "currency_with_percentage",
            "is_total": True,
        },
    ]
    return {"statistiques": statistiques, "budget_total": budget_total}


def _depense_row(libelle: str, paiements: Sequence[PaiementRecord], budget_total: float) -> Dict[str, Any]:
    montant = sum_by_field(paiements, "montant_ttc")
    nombre = len(paiements)
    return {
        "libelle": libelle,
        "montant": montant,
        "pourcentage": percentage_of(montant, budget_total),
        "nombre_paiements": nombre,
        "montant_moyen": montant / nombre if nombre else 0.0,
    }


def _depenses_total(rows: Sequence[Dict[str, Any]], budget_total: float) -> Dict[str, Any]:
    montant = sum_by_field(rows, "montant")
    nombre = int(sum_by_field(rows, "nombre_paiements"))
    return {
        "libelle": LIBELLE_TOTAL,
        "montant": montant,
        "pourcentage": percentage_of(montant, budget_total),
        "nombre_paiements": nombre,
        "montant_moyen": montant / nombre if nombre else 0.0,
    }


def compute_depenses_par_sgami(store: StatistiquesStore, year: int) -> Dict[str, Any]:
    budget_total = resolve_budget_total(store, year)
    by_sgami: Dict[int, List[PaiementRecord]] = defaultdict(list)
    for p in _paiements_of_year(store, year):
        if p.sgami_id is not None:
            by_sgami[p.sgami_id].append(p)

    rows = [_depense_row(s.libelle, by_sgami.get(s.id, []), budget_total) for s in store.sgamis()]
    rows = [r for r in rows if r["montant"] > 0]
    rows.sort(key=lambda r: r["montant"], reverse=True)

    return {"statistiques": rows, "total": _depenses_total(rows, budget_total), "budget_total": budget_total}


def compute_depenses_par_pce(store: StatistiquesStore, year: int) -> Dict[str, Any]:
    budget_total = resolve_budget_total(store, year)
    by_pce: Dict[Optional[int], List[PaiementRecord]] = defaultdict(list)
    for p in _paiements_of_year(store, year):
        by_pce[p.pce_id].append(p)

    rows = [_depense_row(pce.libelle, by_pce.get(pce.id, []), budget_total) for pce in store.pces()]
    sans_pce = _depense_row(SANS_PCE, by_pce.get(None, []), budget_total)
    rows.append(sans_pce)

    rows = [r for r in rows if r["montant"] > 0]
    rows.sort(key=lambda r: r["montant"], reverse=True)

    return {"statistiques": rows, "total": _depenses_total(rows, budget_total), "budget_total": budget_total}


def compute_depenses_par_mois(store: StatistiquesStore, year: int) -> Dict[str, Any]:
    """
    Deux séries mensuelles indépendantes : montants TTC par mois d'émission
    du paiement, et par mois de création du dossier payé.
    """
    budget_total = resolve_budget_total(store, year)
    par_paiement = _paiements_of_year(store, year)
    par_dossier = store.paiements(query().in_year("dossier_created_at", year))

    ttc_paiements: List[float] = []
    ttc_dossiers: List[float] = []
    for month in range(1, 13):
        start, end = month_range(year, month)
        ttc_paiements.append(sum_by_field([p for p in par_paiement if in_range(p.created_at, start, end)], "montant_ttc"))
        ttc_dossiers.append(sum_by_field([p for p in par_dossier if in_range(p.dossier_created_at, start, end)], "montant_ttc"))

    cumul_paiements = running_total(ttc_paiements)
    cumul_dossiers = running_total(ttc_dossiers)

    rows: List[Dict[str, Any]] = []
    for i in range(12):
        rows.append(
            {
                "mois": f"{i + 1:02d}",
                "libelle": month_label(i + 1),
                "annee": year,
                "montant_ttc_paiements": ttc_paiements[i],
                "pourcentage_ttc": percentage_of(ttc_paiements[i], budget_total),
                "cumul_ttc": cumul_paiements[i],
                "pourcentage_cumul_ttc": percentage_of(cumul_paiements[i], budget_total),
                "montant_ttc_dossiers": ttc_dossiers[i],
                "pourcentage_ttc_dossiers": percentage_of(ttc_dossiers[i], budget_total),
                "cumul_ttc_dossiers": cumul_dossiers[i],
                "pourcentage_cumul_ttc_dossiers": percentage_of(cumul_dossiers[i], budget_total),
            }
        )

    total = {
        "mois": LIBELLE_TOTAL,
        "libelle": LIBELLE_TOTAL,
        "annee": year,
        "montant_ttc_paiements": cumul_paiements[-1],
        "pourcentage_ttc": percentage_of(cumul_paiements[-1], budget_total),
        "cumul_ttc": cumul_paiements[-1],
        "pourcentage_cumul_ttc": percentage_of(cumul_paiements[-1], budget_total),
        "montant_ttc_dossiers": cumul_dossiers[-1],
        "pourcentage_ttc_dossiers": percentage_of(cumul_dossiers[-1], budget_total),
        "cumul_ttc_dossiers": cumul_dossiers[-1],
        "pourcentage_cumul_ttc_dossiers": percentage_of(cumul_dossiers[-1], budget_total),
    }

    return {"statistiques": rows, "total": total, "budget_total": budget_total}

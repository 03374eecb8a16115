from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence

from .calculs import percentage_of
from .dates import in_range, month_label, month_range
from .filters import query
from .records import DemandeRecord
from .store import StatistiquesStore

STATUT_RESERVISTE = "Réserviste"
QUALIF_VIOLENCES = "VIOLENCES hors rébellion"

MOTIFS_REJET = (
    "Atteinte involontaire autre qu'accident",
    "Accident de la circulation",
    "Faute personnelle détachable du service",
    "Fait étranger à la qualité de gendarme",
    "Absence d'infraction",
)


def _today(today: Optional[date]) -> date:
    return today or datetime.now().date()


def _as_date(value) -> date:
    return value.date() if isinstance(value, datetime) else value


# ---------------------------
# BAP
# ---------------------------

def compute_statistiques_bap(store: StatistiquesStore, year: int) -> List[Dict[str, Any]]:
    counts: Dict[str, int] = {}
    for d in store.demandes(query().in_year("date_reception", year)):
        for bap in d.baps:
            counts[bap] = counts.get(bap, 0) + 1
    rows = [{"nom_bap": nom, "nombre_demandes": counts[nom]} for nom in sorted(counts)]
    return sorted(rows, key=lambda r: r["nombre_demandes"], reverse=True)


# ---------------------------
# Auto-contrôle
# ---------------------------

def _anciennete_moyenne(demandes: Sequence[DemandeRecord], today: date) -> float:
    if not demandes:
        return 0.0
    total = sum((today - _as_date(d.date_reception)).days for d in demandes)
    return total / len(demandes)


def _delai_moyen(demandes: Sequence[DemandeRecord]) -> float:
    delais = []
    for d in demandes:
        first = d.first_signed_at
        if first is None:
            continue
        jours = (first - d.date_reception).days
        # décision antérieure à la réception : saisie incohérente, ignorée
        if jours >= 0:
            delais.append(jours)
    return sum(delais) / len(delais) if delais else 0.0


def compute_auto_controle(store: StatistiquesStore, year: int, today: Optional[date] = None) -> Dict[str, Any]:
    """
    Indicateurs de contrôle interne sur les demandes reçues dans l'année :
    PJ en attente de convention, ancienneté des demandes non traitées et
    délai moyen jusqu'à la première décision signée (en jours).
    """
    today = _today(today)
    demandes = store.demandes(query().in_year("date_reception", year))

    pj_en_attente = sum(
        1
        for d in demandes
        if any(x.type == "PJ" for x in d.signed_decisions) and not d.has_convention
    )

    non_traitees = [d for d in demandes if not d.is_resolved]
    traitees = [d for d in demandes if d.is_resolved]

    return {
        "pj_en_attente_convention": pj_en_attente,
        "anciennete_moyenne_non_traites": _anciennete_moyenne(non_traitees, today),
        "anciennete_moyenne_bap": _anciennete_moyenne([d for d in non_traitees if d.has_bap], today),
        "anciennete_moyenne_brpf": _anciennete_moyenne([d for d in non_traitees if not d.has_bap], today),
        "delai_traitement_moyen": _delai_moyen(traitees),
        "delai_traitement_bap": _delai_moyen([d for d in traitees if d.has_bap]),
        "delai_traitement_brpf": _delai_moyen([d for d in traitees if not d.has_bap]),
    }


# ---------------------------
# Extraction mensuelle (victimes)
# ---------------------------

def _is_violence(d: DemandeRecord) -> bool:
    return QUALIF_VIOLENCES in (d.qualification_infraction or "")


def _is_reserviste(d: DemandeRecord) -> bool:
    return d.statut_demandeur == STATUT_RESERVISTE


def compute_extraction_mensuelle(store: StatistiquesStore, year: int, today: Optional[date] = None) -> Dict[str, Any]:
    today = _today(today)
    demandes = store.demandes(query().in_year("date_reception", year).one_of("type", ["VICTIME"]))

    colonnes = (
        "victimes",
        "dont_reservistes",
        "violences",
        "dont_violences_reservistes",
    )
    cumuls = {c: 0 for c in colonnes}
    totaux = {c: 0 for c in colonnes}
    mois_comptes = 0

    rows: List[Dict[str, Any]] = []
    for month in range(1, 13):
        start, end = month_range(year, month)
        du_mois = [d for d in demandes if in_range(d.date_reception, start, end)]
        valeurs = {
            "victimes": len(du_mois),
            "dont_reservistes": sum(1 for d in du_mois if _is_reserviste(d)),
            "violences": sum(1 for d in du_mois if _is_violence(d)),
            "dont_violences_reservistes": sum(1 for d in du_mois if _is_violence(d) and _is_reserviste(d)),
        }
        for c in colonnes:
            cumuls[c] += valeurs[c]

        # moyenne sur les mois renseignés ou déjà écoulés
        ecoule = (year, month) < (today.year, today.month)
        if du_mois or ecoule:
            for c in colonnes:
                totaux[c] += valeurs[c]
            mois_comptes += 1

        rows.append(
            {
                "mois": month_label(month),
                **valeurs,
                "cumul_victimes": cumuls["victimes"],
                "cumul_reservistes": cumuls["dont_reservistes"],
                "cumul_violences": cumuls["violences"],
                "cumul_violences_reservistes": cumuls["dont_violences_reservistes"],
            }
        )

    moyenne = {c: (totaux[c] / mois_comptes if mois_comptes else 0.0) for c in colonnes}
    return {"donnees_par_mois": rows, "moyenne_par_mois": moyenne, "annee": year}


# ---------------------------
# Réponse BRPF
# ---------------------------

def compute_reponse_brpf(store: StatistiquesStore, year: int) -> Dict[str, Any]:
    """
    Décisions signées dans l'année, quelle que soit l'année de réception.
    Chaque lien décision<->demande compte.
    """
    decisions = store.decisions(query().in_year("date_signature", year))

    counts = {"AJ": 0, "AJE": 0, "PJ": 0, "REJET": 0}
    motifs = {m: 0 for m in MOTIFS_REJET}
    for decision in decisions:
        liens = len(decision.demandes)
        if decision.type not in counts:
            continue
        counts[decision.type] += liens
        if decision.type == "REJET" and decision.motif_rejet in motifs:
            motifs[decision.motif_rejet] += liens

    agrement = counts["AJ"] + counts["AJE"] + counts["PJ"]
    total = agrement + counts["REJET"]

    statistiques: List[Dict[str, Any]] = [
        {"libelle": "AGRÉMENT", "nombre": agrement, "pourcentage": percentage_of(agrement, total), "type": "agrement"},
    ]
    for t in ("AJ", "AJE", "PJ"):
        statistiques.append({"libelle": t, "nombre": counts[t], "pourcentage": percentage_of(counts[t], total), "type": "decision"})
    statistiques.append(
        {"libelle": "REJET", "nombre": counts["REJET"], "pourcentage": percentage_of(counts["REJET"], total), "type": "rejet_global"}
    )
    for motif, nombre in motifs.items():
        if nombre > 0:
            statistiques.append(
                {"libelle": motif, "nombre": nombre, "pourcentage": percentage_of(nombre, counts["REJET"]), "type": "motif_rejet"}
            )

    return {
        "statistiques": statistiques,
        "totaux": {"total_decisions": total, "agrement": agrement, "rejet": counts["REJET"]},
    }


def compute_annees_disponibles(store: StatistiquesStore) -> List[int]:
    return store.annees_reception()

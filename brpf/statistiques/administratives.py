from __future__ import annotations

from collections import defaultdict
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .calculs import percentage_of
from .dates import year_range, in_range
from .filters import query
from .records import DECISION_TYPES, TYPES_DEMANDEUR, DemandeRecord
from .store import StatistiquesStore

NON_RENSEIGNE = "Non renseigné"

DEFAULT_ROLES_SUIVI = ("ADMIN", "GREFFIER", "REDACTEUR")

# Champs de répartition : nom du champ sur la demande -> libellé de colonne
BREAKDOWN_FIELDS: Dict[str, str] = {
    "qualification_infraction": "Qualification de l'infraction",
    "contexte_missionnel": "Contexte missionnel",
    "formation_administrative": "Formation administrative",
    "branche": "Branche",
    "statut_demandeur": "Statut du demandeur",
    "badges": "Badge",
}

# Noms courts acceptés dans les URLs
FIELD_ALIASES: Dict[str, str] = {
    "type_infraction": "qualification_infraction",
    "infraction": "qualification_infraction",
    "contexte": "contexte_missionnel",
    "formation": "formation_administrative",
    "statut": "statut_demandeur",
    "badge": "badges",
}


def resolve_field(name: str) -> str:
    key = (name or "").strip().lower().replace("-", "_")
    key = FIELD_ALIASES.get(key, key)
    if key not in BREAKDOWN_FIELDS:
        raise ValueError(f"Champ de répartition inconnu : {name}")
    return key


def _label(value: Any) -> str:
    s = str(value).strip() if value is not None else ""
    return s or NON_RENSEIGNE


def _demandes_of_year(store: StatistiquesStore, year: int) -> List[DemandeRecord]:
    return store.demandes(query().in_year("date_reception", year))


# ---------------------------
# Répartitions
# ---------------------------

def breakdown(demandes: Sequence[DemandeRecord], field: str) -> List[Dict[str, Any]]:
    """
    Répartition des demandes selon un champ, triée par nombre décroissant.

    Les badges sont multi-valués : une demande à N badges compte dans N
    catégories, une demande sans badge dans aucune. Pour les autres champs,
    une valeur vide tombe dans "Non renseigné".
    """
    total = len(demandes)
    counts: Dict[str, int] = {}

    if field == "badges":
        for d in demandes:
            for badge in d.badges:
                counts[badge] = counts.get(badge, 0) + 1
        # à nombre égal, ordre alphabétique des badges (le tri par nombre ci-dessous est stable)
        labels = sorted(counts)
    else:
        for d in demandes:
            lbl = _label(getattr(d, field))
            counts[lbl] = counts.get(lbl, 0) + 1
        labels = list(counts)

    rows = [
        {
            "categorie": lbl,
            "nombre_demandes": counts[lbl],
            "pourcentage": percentage_of(counts[lbl], total),
        }
        for lbl in labels
        if counts[lbl] > 0
    ]
    # sorted() est stable : l'ordre d'apparition départage les égalités
    return sorted(rows, key=lambda r: r["nombre_demandes"], reverse=True)


def compute_breakdown(store: StatistiquesStore, year: int, field: str) -> List[Dict[str, Any]]:
    key = resolve_field(field)
    return breakdown(_demandes_of_year(store, year), key)


def compute_qualite_demandeur(store: StatistiquesStore, year: int) -> List[Dict[str, Any]]:
    demandes = _demandes_of_year(store, year)
    counts = {t: 0 for t in TYPES_DEMANDEUR}
    for d in demandes:
        if d.type in counts:
            counts[d.type] += 1
    total = sum(counts.values())
    return [
        {"qualite": t, "nombre_demandes": n, "pourcentage": percentage_of(n, total)}
        for t, n in counts.items()
    ]


# ---------------------------
# Suivi par utilisateur
# ---------------------------

def _signed_in_year(d: DemandeRecord, decision_type: str, start, end) -> bool:
    return any(
        x.type == decision_type and in_range(x.date_signature, start, end)
        for x in d.decisions
    )


def compute_workload(
    store: StatistiquesStore,
    year: int,
    roles: Optional[Iterable[str]] = None,
) -> Dict[str, Any]:
    """
    Statistiques générales de l'année et charge de travail par utilisateur.

    Toutes les demandes de l'année et toutes les décisions signées dans
    l'année sont chargées en deux lectures, puis ventilées en mémoire par
    utilisateur.
    """
    start, end = year_range(year)
    demandes = _demandes_of_year(store, year)

    generales = {
        "demandes_total": len(demandes),
        "demandes_traitees": sum(1 for d in demandes if d.is_resolved),
        "demandes_en_instance": sum(
            1 for d in demandes if d.assigne_a_id is not None and not d.is_resolved
        ),
        "demandes_non_affectees": sum(1 for d in demandes if d.assigne_a_id is None),
    }

    users = store.staff_users(roles if roles is not None else DEFAULT_ROLES_SUIVI)
    if not users:
        return {"generales": generales, "utilisateurs": []}

    user_ids = [u.id for u in users]
    by_user: Dict[int, List[DemandeRecord]] = defaultdict(list)
    for d in demandes:
        if d.assigne_a_id is not None:
            by_user[d.assigne_a_id].append(d)

    # Un lien décision<->demande par demande couverte : une décision
    # portant sur deux demandes du même rédacteur compte deux fois.
    decisions = store.decisions(
        query()
        .in_year("date_signature", year)
        .one_of("demandes_assigne_a_ids", user_ids)
    )
    repartition: Dict[int, Dict[str, int]] = defaultdict(lambda: {t: 0 for t in ("PJ", "AJE", "AJ", "REJET")})
    for decision in decisions:
        if decision.type not in DECISION_TYPES:
            continue
        for target in decision.demandes:
            if target.assigne_a_id in user_ids:
                repartition[target.assigne_a_id][decision.type] += 1

    utilisateurs: List[Dict[str, Any]] = []
    for u in users:
        mine = by_user.get(u.id, [])
        if not mine:
            continue

        propres = [d for d in mine if not d.has_bap]
        bap = [d for d in mine if d.has_bap]
        en_cours = [d for d in mine if not d.is_resolved]

        utilisateurs.append(
            {
                "id": u.id,
                "nom": u.nom,
                "prenom": u.prenom,
                "role": u.role,
                "grade": u.grade,
                "demandes_attribuees": len(mine),
                "demandes_propres": len(propres),
                "demandes_bap": len(bap),
                "decisions_repartition": dict(repartition[u.id]),
                "passage_aje_vers_pj": sum(
                    1
                    for d in mine
                    if _signed_in_year(d, "AJE", start, end) and _signed_in_year(d, "PJ", start, end)
                ),
                "en_cours": len(en_cours),
                "en_cours_propre": sum(1 for d in en_cours if not d.has_bap),
                "en_cours_bap": sum(1 for d in en_cours if d.has_bap),
            }
        )

    utilisateurs.sort(key=lambda r: ((r["role"] or "").upper(), (r["nom"] or "").lower(), (r["prenom"] or "").lower()))
    return {"generales": generales, "utilisateurs": utilisateurs}

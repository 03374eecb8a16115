"""
Accès aux données des statistiques.

`StatistiquesStore` décrit ce que les rapports attendent d'une source :
des collections de records filtrées par un `QuerySpec`. `SqlAlchemyStore`
en est l'implémentation sur la base applicative ; il est construit une
seule fois par `create_app` et rangé dans `app.extensions`.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Protocol

from sqlalchemy import and_, extract, func, or_, true
from sqlalchemy.orm import joinedload, selectinload

from brpf.models import (
    Badge,
    Bap,
    BudgetAnnuel,
    Convention,
    Decision,
    Demande,
    Dossier,
    Paiement,
    Pce,
    Sgami,
    User,
)

from .filters import MultiSelectFilter, NullFilter, QuerySpec, RangeFilter, TextFilter
from .records import (
    BudgetRecord,
    ConventionRecord,
    DecisionLink,
    DecisionRecord,
    DecisionTarget,
    DemandeRecord,
    Libelle,
    PaiementRecord,
    StaffUser,
)


class StatistiquesStore(Protocol):
    def demandes(self, spec: QuerySpec) -> List[DemandeRecord]: ...

    def decisions(self, spec: QuerySpec) -> List[DecisionRecord]: ...

    def conventions(self, spec: QuerySpec) -> List[ConventionRecord]: ...

    def paiements(self, spec: QuerySpec) -> List[PaiementRecord]: ...

    def count_dossiers(self, spec: QuerySpec) -> int: ...

    def budget_annuel(self, annee: int) -> Optional[BudgetRecord]: ...

    def staff_users(self, roles: Iterable[str]) -> List[StaffUser]: ...

    def sgamis(self) -> List[Libelle]: ...

    def pces(self) -> List[Libelle]: ...

    def annees_reception(self) -> List[int]: ...


# ---------------------------
# QuerySpec -> critères SQLAlchemy
# ---------------------------

class _Related:
    """Champ porté par une relation : any() (collection) ou has() (scalaire)."""

    def __init__(self, relationship, column, many: bool = True):
        self.relationship = relationship
        self.column = column
        self.many = many

    def _wrap(self, criterion=None):
        if self.many:
            return self.relationship.any(criterion) if criterion is not None else self.relationship.any()
        return self.relationship.has(criterion) if criterion is not None else self.relationship.has()


def _escape_like(text: str) -> str:
    # % et _ saisis par l'utilisateur sont des caractères littéraux
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _column_criterion(flt, column):
    if isinstance(flt, RangeFilter):
        conds = [column.isnot(None)]
        if flt.gte is not None:
            conds.append(column >= flt.gte)
        if flt.lt is not None:
            conds.append(column < flt.lt)
        return and_(*conds)
    if isinstance(flt, MultiSelectFilter):
        return column.in_(list(flt.values))
    if isinstance(flt, TextFilter):
        text = (flt.text or "").strip()
        if not text:
            return true()
        return column.ilike(f"%{_escape_like(text)}%", escape="\\")
    if isinstance(flt, NullFilter):
        return column.is_(None) if flt.is_null else column.isnot(None)
    raise TypeError(f"Filtre non supporté : {flt!r}")


def _criterion(flt, target):
    if isinstance(target, _Related):
        if isinstance(flt, NullFilter):
            exists = target._wrap()
            if target.many:
                return ~exists if flt.is_null else exists
            # relation scalaire : "nul" = cible absente ou colonne nulle
            if flt.is_null:
                return or_(~exists, target._wrap(target.column.is_(None)))
            return target._wrap(target.column.isnot(None))
        return target._wrap(_column_criterion(flt, target.column))
    return _column_criterion(flt, target)


def criteria_for(spec: QuerySpec, fields: Dict[str, Any]) -> list:
    out = []
    for flt in spec.filters:
        if flt.field not in fields:
            raise ValueError(f"Champ non filtrable : {flt.field}")
        out.append(_criterion(flt, fields[flt.field]))
    return out


DEMANDE_FIELDS: Dict[str, Any] = {
    "id": Demande.id,
    "date_reception": Demande.date_reception,
    "type": Demande.type,
    "assigne_a_id": Demande.assigne_a_id,
    "qualification_infraction": Demande.qualification_infraction,
    "contexte_missionnel": Demande.contexte_missionnel,
    "formation_administrative": Demande.formation_administrative,
    "branche": Demande.branche,
    "statut_demandeur": Demande.statut_demandeur,
    "badges": _Related(Demande.badges, Badge.nom),
    "baps": _Related(Demande.baps, Bap.nom_bap),
}

DECISION_FIELDS: Dict[str, Any] = {
    "id": Decision.id,
    "type": Decision.type,
    "date_signature": Decision.date_signature,
    "motif_rejet": Decision.motif_rejet,
    "demande_ids": _Related(Decision.demandes, Demande.id),
    "demandes_dates_reception": _Related(Decision.demandes, Demande.date_reception),
    "demandes_assigne_a_ids": _Related(Decision.demandes, Demande.assigne_a_id),
}

CONVENTION_FIELDS: Dict[str, Any] = {
    "id": Convention.id,
    "type": Convention.type,
    "montant_ht": Convention.montant_ht,
    "date_creation": Convention.date_creation,
    "date_retour_signe": Convention.date_retour_signe,
    "sgami_id": _Related(Convention.dossier, Dossier.sgami_id, many=False),
}

PAIEMENT_FIELDS: Dict[str, Any] = {
    "id": Paiement.id,
    "montant_ht": Paiement.montant_ht,
    "montant_ttc": Paiement.montant_ttc,
    "created_at": Paiement.created_at,
    "dossier_id": Paiement.dossier_id,
    "sgami_id": Paiement.sgami_id,
    "pce_id": Paiement.pce_id,
    "dossier_created_at": _Related(Paiement.dossier, Dossier.created_at, many=False),
}

DOSSIER_FIELDS: Dict[str, Any] = {
    "id": Dossier.id,
    "created_at": Dossier.created_at,
    "sgami_id": Dossier.sgami_id,
}


# ---------------------------
# Modèles -> records
# ---------------------------

def _demande_record(d: Demande) -> DemandeRecord:
    return DemandeRecord(
        id=d.id,
        date_reception=d.date_reception,
        type=d.type,
        assigne_a_id=d.assigne_a_id,
        qualification_infraction=d.qualification_infraction,
        contexte_missionnel=d.contexte_missionnel,
        formation_administrative=d.formation_administrative,
        branche=d.branche,
        statut_demandeur=d.statut_demandeur,
        badges=tuple(b.nom for b in d.badges),
        baps=tuple(b.nom_bap for b in d.baps),
        decisions=tuple(DecisionLink(x.id, x.type, x.date_signature) for x in d.decisions),
        has_convention=len(d.conventions) > 0,
    )


def _decision_record(x: Decision) -> DecisionRecord:
    return DecisionRecord(
        id=x.id,
        type=x.type,
        date_signature=x.date_signature,
        motif_rejet=x.motif_rejet,
        demandes=tuple(
            DecisionTarget(dm.id, dm.date_reception, dm.assigne_a_id) for dm in x.demandes
        ),
    )


class SqlAlchemyStore:
    """Store en lecture seule au-dessus d'une session SQLAlchemy."""

    def __init__(self, session, logger: Optional[logging.Logger] = None):
        self.session = session
        self.logger = logger or logging.getLogger(__name__)

    def _log(self, what: str, count: int) -> None:
        self.logger.debug("statistiques: %d %s chargé(e)s", count, what)

    def demandes(self, spec: QuerySpec) -> List[DemandeRecord]:
        q = (
            self.session.query(Demande)
            .options(
                selectinload(Demande.badges),
                selectinload(Demande.baps),
                selectinload(Demande.decisions),
                selectinload(Demande.conventions),
            )
            .filter(*criteria_for(spec, DEMANDE_FIELDS))
            .order_by(Demande.date_reception.asc(), Demande.id.asc())
        )
        rows = [_demande_record(d) for d in q.all()]
        self._log("demandes", len(rows))
        return rows

    def decisions(self, spec: QuerySpec) -> List[DecisionRecord]:
        q = (
            self.session.query(Decision)
            .options(selectinload(Decision.demandes))
            .filter(*criteria_for(spec, DECISION_FIELDS))
            .order_by(Decision.id.asc())
        )
        rows = [_decision_record(x) for x in q.all()]
        self._log("décisions", len(rows))
        return rows

    def conventions(self, spec: QuerySpec) -> List[ConventionRecord]:
        q = (
            self.session.query(Convention)
            .options(joinedload(Convention.dossier))
            .filter(*criteria_for(spec, CONVENTION_FIELDS))
            .order_by(Convention.date_creation.asc(), Convention.id.asc())
        )
        rows = [
            ConventionRecord(
                id=c.id,
                type=c.type,
                montant_ht=c.montant_ht,
                date_creation=c.date_creation,
                date_retour_signe=c.date_retour_signe,
                sgami_id=c.dossier.sgami_id if c.dossier else None,
            )
            for c in q.all()
        ]
        self._log("conventions", len(rows))
        return rows

    def paiements(self, spec: QuerySpec) -> List[PaiementRecord]:
        q = (
            self.session.query(Paiement)
            .options(joinedload(Paiement.dossier))
            .filter(*criteria_for(spec, PAIEMENT_FIELDS))
            .order_by(Paiement.created_at.asc(), Paiement.id.asc())
        )
        rows = [
            PaiementRecord(
                id=p.id,
                montant_ttc=p.montant_ttc or 0.0,
                montant_ht=p.montant_ht,
                created_at=p.created_at,
                dossier_id=p.dossier_id,
                dossier_created_at=p.dossier.created_at if p.dossier else None,
                sgami_id=p.sgami_id,
                pce_id=p.pce_id,
            )
            for p in q.all()
        ]
        self._log("paiements", len(rows))
        return rows

    def count_dossiers(self, spec: QuerySpec) -> int:
        q = self.session.query(func.count(Dossier.id)).filter(*criteria_for(spec, DOSSIER_FIELDS))
        return int(q.scalar() or 0)

    def budget_annuel(self, annee: int) -> Optional[BudgetRecord]:
        b = self.session.query(BudgetAnnuel).filter(BudgetAnnuel.annee == annee).first()
        if not b:
            return None
        return BudgetRecord(annee=b.annee, budget_base=b.budget_base or 0.0, abondements=b.abondements or 0.0)

    def staff_users(self, roles: Iterable[str]) -> List[StaffUser]:
        wanted = sorted({(r or "").strip().upper() for r in roles if (r or "").strip()})
        if not wanted:
            return []
        q = (
            self.session.query(User)
            .filter(User.active.is_(True))
            .filter(func.upper(User.role).in_(wanted))
            .order_by(User.id.asc())
        )
        return [
            StaffUser(id=u.id, nom=u.nom or "", prenom=u.prenom or "", role=(u.role or "").upper(), grade=u.grade, active=True)
            for u in q.all()
        ]

    def sgamis(self) -> List[Libelle]:
        return [Libelle(s.id, s.nom) for s in self.session.query(Sgami).order_by(Sgami.nom.asc()).all()]

    def pces(self) -> List[Libelle]:
        q = self.session.query(Pce).order_by(Pce.ordre.asc(), Pce.pce_numerique.asc())
        return [Libelle(p.id, p.libelle, p.ordre or 0) for p in q.all()]

    def annees_reception(self) -> List[int]:
        year = extract("year", Demande.date_reception)
        rows = self.session.query(year).distinct().all()
        return sorted({int(r[0]) for r in rows if r[0] is not None}, reverse=True)

"""
Vues en lecture seule des flux consommés par les statistiques.

Le store les construit à partir des modèles SQLAlchemy (ou les tests à la
main) ; les rapports ne manipulent jamais de modèle ORM.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple

DECISION_TYPES = ("AJ", "AJE", "PJ", "REJET")
TYPES_DEMANDEUR = ("VICTIME", "MIS_EN_CAUSE")


@dataclass(frozen=True)
class DecisionLink:
    """Une décision vue depuis une demande qu'elle couvre."""

    decision_id: int
    type: str
    date_signature: Optional[datetime] = None


@dataclass(frozen=True)
class DemandeRecord:
    id: int
    date_reception: datetime
    type: str = "VICTIME"
    assigne_a_id: Optional[int] = None

    qualification_infraction: Optional[str] = None
    contexte_missionnel: Optional[str] = None
    formation_administrative: Optional[str] = None
    branche: Optional[str] = None
    statut_demandeur: Optional[str] = None

    badges: Tuple[str, ...] = ()
    baps: Tuple[str, ...] = ()
    decisions: Tuple[DecisionLink, ...] = ()
    has_convention: bool = False

    @property
    def has_bap(self) -> bool:
        return len(self.baps) > 0

    @property
    def signed_decisions(self) -> Tuple[DecisionLink, ...]:
        return tuple(d for d in self.decisions if d.date_signature is not None)

    @property
    def is_resolved(self) -> bool:
        return len(self.signed_decisions) > 0

    @property
    def first_signed_at(self) -> Optional[datetime]:
        dates = [d.date_signature for d in self.signed_decisions]
        return min(dates) if dates else None


@dataclass(frozen=True)
class DecisionTarget:
    """Une demande vue depuis une décision qui la couvre."""

    demande_id: int
    date_reception: Optional[datetime] = None
    assigne_a_id: Optional[int] = None


@dataclass(frozen=True)
class DecisionRecord:
    id: int
    type: str
    date_signature: Optional[datetime] = None
    motif_rejet: Optional[str] = None
    demandes: Tuple[DecisionTarget, ...] = ()

    @property
    def demande_ids(self) -> Tuple[int, ...]:
        return tuple(t.demande_id for t in self.demandes)

    @property
    def demandes_dates_reception(self) -> Tuple[datetime, ...]:
        return tuple(t.date_reception for t in self.demandes if t.date_reception is not None)

    @property
    def demandes_assigne_a_ids(self) -> Tuple[int, ...]:
        return tuple(t.assigne_a_id for t in self.demandes if t.assigne_a_id is not None)


@dataclass(frozen=True)
class ConventionRecord:
    id: int
    type: str = "CONVENTION"  # CONVENTION | AVENANT
    montant_ht: Optional[float] = None
    date_creation: Optional[datetime] = None
    date_retour_signe: Optional[datetime] = None
    sgami_id: Optional[int] = None


@dataclass(frozen=True)
class PaiementRecord:
    id: int
    montant_ttc: float = 0.0
    montant_ht: Optional[float] = None
    created_at: Optional[datetime] = None
    dossier_id: Optional[int] = None
    dossier_created_at: Optional[datetime] = None
    sgami_id: Optional[int] = None
    pce_id: Optional[int] = None


@dataclass(frozen=True)
class BudgetRecord:
    annee: int
    budget_base: float = 0.0
    abondements: float = 0.0

    @property
    def total(self) -> float:
        return float(self.budget_base or 0) + float(self.abondements or 0)


@dataclass(frozen=True)
class StaffUser:
    id: int
    nom: str
    prenom: str = ""
    role: str = ""
    grade: Optional[str] = None
    active: bool = True

    @property
    def display_name(self) -> str:
        return f"{self.prenom} {self.nom}".strip()


@dataclass(frozen=True)
class Libelle:
    """Entrée de référentiel (SGAMI, PCE, BAP) : id + libellé affiché."""

    id: int
    libelle: str
    ordre: int = 0

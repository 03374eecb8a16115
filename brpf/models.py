from datetime import datetime

from werkzeug.security import generate_password_hash, check_password_hash

from brpf.extensions import db


# ---------- USERS ----------
class User(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(180), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    nom = db.Column(db.String(120), nullable=False, default="Utilisateur")
    prenom = db.Column(db.String(120), nullable=False, default="")
    grade = db.Column(db.String(80), nullable=True)
    # Rôle métier (ADMIN / GREFFIER / REDACTEUR / ...) : sert au périmètre des stats
    role = db.Column(db.String(40), nullable=False, default="REDACTEUR")
    active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    # Flask-Login
    @property
    def is_authenticated(self):
        return True

    @property
    def is_active(self):
        return bool(self.active)

    @property
    def is_anonymous(self):
        return False

    def get_id(self):
        return str(self.id)

    def set_password(self, password: str):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    def has_perm(self, code: str) -> bool:
        codes: set[str] = set()
        for role in getattr(self, "roles", []) or []:
            for p in getattr(role, "permissions", []) or []:
                codes.add(p.code)
        return code in codes

    @property
    def role_codes(self) -> list[str]:
        return sorted([r.code for r in getattr(self, "roles", []) or []])


# =========================================================
# RBAC (Roles & Permissions)
# ---------------------------------------------------------
# User.role reste le rôle métier ; les droits d'accès passent par Role/Permission.

user_roles = db.Table(
    "user_roles",
    db.Column("user_id", db.Integer, db.ForeignKey("user.id", ondelete="CASCADE"), primary_key=True),
    db.Column("role_id", db.Integer, db.ForeignKey("role.id", ondelete="CASCADE"), primary_key=True),
)

role_permissions = db.Table(
    "role_permissions",
    db.Column("role_id", db.Integer, db.ForeignKey("role.id", ondelete="CASCADE"), primary_key=True),
    db.Column("permission_id", db.Integer, db.ForeignKey("permission.id", ondelete="CASCADE"), primary_key=True),
)


class Role(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(60), unique=True, nullable=False, index=True)  # ex: "ADMIN", "GREFFIER"
    label = db.Column(db.String(120), nullable=False, default="Rôle")

    permissions = db.relationship(
        "Permission",
        secondary=role_permissions,
        lazy="subquery",
        backref=db.backref("roles", lazy=True),
    )

    def __repr__(self) -> str:
        return f"<Role {self.code}>"


class Permission(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(120), unique=True, nullable=False, index=True)  # ex: "statistiques:view"
    label = db.Column(db.String(200), nullable=False, default="Permission")
    category = db.Column(db.String(60), nullable=True, index=True)

    def __repr__(self) -> str:
        return f"<Perm {self.code}>"


# Relation User.roles (déclarée après Role)
User.roles = db.relationship(
    "Role",
    secondary=user_roles,
    lazy="subquery",
    backref=db.backref("users", lazy=True),
)


# ---------- RÉFÉRENTIELS ----------
class Sgami(db.Model):
    """Service payeur (SGAMI)."""

    __tablename__ = "sgami"
    id = db.Column(db.Integer, primary_key=True)
    nom = db.Column(db.String(120), unique=True, nullable=False)


class Pce(db.Model):
    """Ligne budgétaire (nomenclature PCE)."""

    __tablename__ = "pce"
    id = db.Column(db.Integer, primary_key=True)
    pce_numerique = db.Column(db.String(40), nullable=False)
    pce_detaille = db.Column(db.String(200), nullable=False)
    ordre = db.Column(db.Integer, nullable=False, default=0)

    @property
    def libelle(self) -> str:
        return f"{self.pce_numerique} - {self.pce_detaille}"


class Bap(db.Model):
    __tablename__ = "bap"
    id = db.Column(db.Integer, primary_key=True)
    nom_bap = db.Column(db.String(120), unique=True, nullable=False)


class Badge(db.Model):
    __tablename__ = "badge"
    id = db.Column(db.Integer, primary_key=True)
    nom = db.Column(db.String(120), unique=True, nullable=False)


demande_badges = db.Table(
    "demande_badge",
    db.Column("demande_id", db.Integer, db.ForeignKey("demande.id", ondelete="CASCADE"), primary_key=True),
    db.Column("badge_id", db.Integer, db.ForeignKey("badge.id", ondelete="CASCADE"), primary_key=True),
)

demande_baps = db.Table(
    "demande_bap",
    db.Column("demande_id", db.Integer, db.ForeignKey("demande.id", ondelete="CASCADE"), primary_key=True),
    db.Column("bap_id", db.Integer, db.ForeignKey("bap.id", ondelete="CASCADE"), primary_key=True),
)

# Une décision peut viser plusieurs demandes : chaque lien compte dans les agrégats
decision_demandes = db.Table(
    "decision_demande",
    db.Column("decision_id", db.Integer, db.ForeignKey("decision.id", ondelete="CASCADE"), primary_key=True),
    db.Column("demande_id", db.Integer, db.ForeignKey("demande.id", ondelete="CASCADE"), primary_key=True),
)

convention_demandes = db.Table(
    "convention_demande",
    db.Column("convention_id", db.Integer, db.ForeignKey("convention.id", ondelete="CASCADE"), primary_key=True),
    db.Column("demande_id", db.Integer, db.ForeignKey("demande.id", ondelete="CASCADE"), primary_key=True),
)


# ---------- DOSSIERS / DEMANDES ----------
class Dossier(db.Model):
    __tablename__ = "dossier"
    id = db.Column(db.Integer, primary_key=True)
    numero = db.Column(db.String(40), nullable=True, index=True)
    sgami_id = db.Column(db.Integer, db.ForeignKey("sgami.id"), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)

    sgami = db.relationship("Sgami", backref="dossiers")
    demandes = db.relationship("Demande", backref="dossier")
    conventions = db.relationship("Convention", back_populates="dossier")
    paiements = db.relationship("Paiement", back_populates="dossier")


class Demande(db.Model):
    __tablename__ = "demande"
    id = db.Column(db.Integer, primary_key=True)
    numero_ds = db.Column(db.String(40), nullable=True, index=True)
    type = db.Column(db.String(20), nullable=False, default="VICTIME")  # VICTIME | MIS_EN_CAUSE
    date_reception = db.Column(db.DateTime, nullable=False, index=True)

    dossier_id = db.Column(db.Integer, db.ForeignKey("dossier.id"), nullable=True)
    assigne_a_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=True, index=True)

    qualification_infraction = db.Column(db.String(200), nullable=True)
    contexte_missionnel = db.Column(db.String(120), nullable=True)
    formation_administrative = db.Column(db.String(120), nullable=True)
    branche = db.Column(db.String(80), nullable=True)
    statut_demandeur = db.Column(db.String(80), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    assigne_a = db.relationship("User", backref="demandes_assignees")
    badges = db.relationship("Badge", secondary=demande_badges, backref="demandes")
    baps = db.relationship("Bap", secondary=demande_baps, backref="demandes")
    decisions = db.relationship("Decision", secondary=decision_demandes, back_populates="demandes")
    conventions = db.relationship("Convention", secondary=convention_demandes, back_populates="demandes")


class Decision(db.Model):
    __tablename__ = "decision"
    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.String(10), nullable=False)  # AJ | AJE | PJ | REJET
    motif_rejet = db.Column(db.String(200), nullable=True)
    date_signature = db.Column(db.DateTime, nullable=True, index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    demandes = db.relationship("Demande", secondary=decision_demandes, back_populates="decisions")


class Convention(db.Model):
    """Convention d'honoraires ou avenant."""

    __tablename__ = "convention"
    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.String(20), nullable=False, default="CONVENTION")  # CONVENTION | AVENANT
    montant_ht = db.Column(db.Float, nullable=True)
    date_creation = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)
    date_retour_signe = db.Column(db.DateTime, nullable=True, index=True)
    dossier_id = db.Column(db.Integer, db.ForeignKey("dossier.id"), nullable=True)

    dossier = db.relationship("Dossier", back_populates="conventions")
    demandes = db.relationship("Demande", secondary=convention_demandes, back_populates="conventions")


class Paiement(db.Model):
    __tablename__ = "paiement"
    id = db.Column(db.Integer, primary_key=True)
    montant_ht = db.Column(db.Float, nullable=True)  # pas toujours renseigné
    montant_ttc = db.Column(db.Float, nullable=False, default=0.0)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)

    dossier_id = db.Column(db.Integer, db.ForeignKey("dossier.id"), nullable=True)
    sgami_id = db.Column(db.Integer, db.ForeignKey("sgami.id"), nullable=True)
    pce_id = db.Column(db.Integer, db.ForeignKey("pce.id"), nullable=True)

    dossier = db.relationship("Dossier", back_populates="paiements")
    sgami = db.relationship("Sgami", backref="paiements")
    pce = db.relationship("Pce", backref="paiements")


class BudgetAnnuel(db.Model):
    __tablename__ = "budget_annuel"
    id = db.Column(db.Integer, primary_key=True)
    annee = db.Column(db.Integer, unique=True, nullable=False, index=True)
    budget_base = db.Column(db.Float, nullable=False, default=0.0)
    abondements = db.Column(db.Float, nullable=False, default=0.0)

    @property
    def total(self) -> float:
        return float(self.budget_base or 0) + float(self.abondements or 0)

from __future__ import annotations

from functools import wraps
from typing import Iterable

from flask import abort, current_app
from flask_login import current_user

from brpf.extensions import db
from brpf.models import User, Role, Permission


# Liste canonique des permissions (codes stables) + libellés humains.
DEFAULT_PERMS: list[tuple[str, str]] = [
    # Statistiques
    ("statistiques:view", "Voir les statistiques administratives et les flux"),
    ("statistiques:budget", "Voir les statistiques budgétaires"),
    ("statistiques:export", "Exporter les statistiques (Excel)"),

    # Admin
    ("admin:users", "Gérer les utilisateurs"),
    ("admin:rbac", "Gérer les droits (RBAC)"),
]


ROLE_TEMPLATES: dict[str, dict[str, Iterable[str]]] = {
    # Accès global total
    "ADMIN": {
        "perms": [p for (p, _) in DEFAULT_PERMS],
    },

    # Greffe : pilotage complet, budget compris
    "GREFFIER": {
        "perms": [
            "statistiques:view",
            "statistiques:budget",
            "statistiques:export",
        ],
    },

    # Rédacteur : statistiques d'activité seulement
    "REDACTEUR": {
        "perms": [
            "statistiques:view",
        ],
    },
}


def _category_from_code(code: str) -> str:
    module = (code.split(":", 1)[0] if ":" in code else code).strip()
    mapping = {
        "statistiques": "Statistiques",
        "admin": "Admin",
    }
    return mapping.get(module, module.capitalize())


def bootstrap_rbac() -> None:
    """Initialise RBAC (permissions + rôles) de manière idempotente."""

    existing = {p.code: p for p in Permission.query.all()}
    changed = False

    for code, label in DEFAULT_PERMS:
        new_cat = _category_from_code(code)
        if code not in existing:
            db.session.add(Permission(code=code, label=label, category=new_cat))
            changed = True
            continue
        p = existing[code]
        if p.label != label or p.category != new_cat:
            p.label = label
            p.category = new_cat
            changed = True

    if changed:
        db.session.commit()

    perms_by_code = {p.code: p for p in Permission.query.all()}
    apply_templates = bool(current_app.config.get("RBAC_APPLY_TEMPLATES"))

    for role_code, cfg in ROLE_TEMPLATES.items():
        role = Role.query.filter_by(code=role_code).first()
        created = False
        if not role:
            role = Role(code=role_code, label=role_code.capitalize())
            db.session.add(role)
            db.session.flush()
            created = True

        # Un rôle existant garde ses permissions (modifs via l'admin), sauf forçage explicite
        if created or apply_templates:
            desired = set(cfg.get("perms", []))
            role.permissions = [perms_by_code[c] for c in sorted(desired) if c in perms_by_code]

    db.session.commit()

    # Rattrapage : un utilisateur sans rôle RBAC est aligné sur son rôle métier
    for u in User.query.all():
        if len(u.roles) == 0:
            role = Role.query.filter_by(code=(u.role or "").strip().upper()).first()
            if role:
                u.roles.append(role)

    db.session.commit()


def _is_open() -> bool:
    # LOGIN_DISABLED (tests, poste isolé) : Flask-Login laisse passer, le RBAC aussi
    return bool(current_app.config.get("LOGIN_DISABLED"))


def require_perm(code: str):
    """Décorateur: exige une permission RBAC (401 si anonyme, 403 sinon)."""

    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            if _is_open():
                return fn(*args, **kwargs)

            if not current_user.is_authenticated:
                abort(401)

            has_perm_fn = getattr(current_user, "has_perm", None)
            if not callable(has_perm_fn) or not has_perm_fn(code):
                abort(403)

            return fn(*args, **kwargs)

        return wrapper

    return decorator


def can(code: str) -> bool:
    if _is_open():
        return True

    if not current_user.is_authenticated:
        return False

    has_perm_fn = getattr(current_user, "has_perm", None)
    if not callable(has_perm_fn):
        return False

    return has_perm_fn(code)

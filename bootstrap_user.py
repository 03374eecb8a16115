import argparse
from sqlalchemy import inspect

from brpf import create_app
from brpf.extensions import db
from brpf.models import User, Role
from brpf.rbac import ROLE_TEMPLATES, bootstrap_rbac


REQUIRED_TABLES = {
    "user",
    "role",
    "permission",
    "user_roles",
    "role_permissions",
    "demande",
    "decision",
}


def ensure_db_is_sane():
    """Vérifie que les tables/colonnes minimales existent. Crash propre si incohérent."""
    insp = inspect(db.engine)

    existing = set(insp.get_table_names())
    missing = sorted(REQUIRED_TABLES - existing)
    if missing:
        raise RuntimeError(
            "DB incomplète (tables manquantes): " + ", ".join(missing) +
            " | Lance d'abord l'init DB (create_all + bootstrap_rbac)."
        )

    user_cols = {c["name"] for c in insp.get_columns("user")}
    for col in ("id", "email", "password_hash", "nom", "role", "active"):
        if col not in user_cols:
            raise RuntimeError(f"DB incompatible: colonne user.{col} manquante")


def ensure_user(email: str, password: str, role_code: str, nom: str, prenom: str, grade: str | None):
    email = (email or "").strip().lower()
    if not email:
        raise ValueError("Email vide")

    u = User.query.filter_by(email=email).first()
    created = False

    if not u:
        u = User(email=email, nom=nom or "Utilisateur")
        created = True

    u.prenom = prenom or u.prenom or ""
    if grade is not None:
        u.grade = grade
    # le rôle métier pilote aussi le périmètre des statistiques de suivi
    u.role = role_code
    u.active = True
    u.set_password(password)

    db.session.add(u)
    db.session.commit()

    role = Role.query.filter_by(code=role_code).first()
    if not role:
        role = Role(code=role_code, label=role_code.capitalize())
        db.session.add(role)
        db.session.commit()

    if role not in u.roles:
        u.roles.append(role)
        db.session.commit()

    return u, created


def main():
    parser = argparse.ArgumentParser(description="Crée ou répare un compte d'accès aux statistiques.")
    parser.add_argument("--email", default="admin@brpf.local")
    parser.add_argument("--password", default="admin123!")
    parser.add_argument("--role", default="ADMIN", choices=sorted(ROLE_TEMPLATES))
    parser.add_argument("--nom", default="Admin")
    parser.add_argument("--prenom", default="")
    parser.add_argument("--grade", default=None)
    args = parser.parse_args()

    app = create_app()

    with app.app_context():
        print("DB URI     =", db.engine.url.render_as_string(hide_password=True))
        print("DB DIALECT =", db.engine.dialect.name)

        # 1) Crée tout ce que SQLAlchemy connaît
        db.create_all()

        # 2) Bootstrap RBAC (idempotent)
        bootstrap_rbac()

        # 3) Vérifie que la DB est cohérente (sinon message clair)
        ensure_db_is_sane()

        # 4) Crée/répare le user
        u, created = ensure_user(
            email=args.email,
            password=args.password,
            role_code=args.role,
            nom=args.nom,
            prenom=args.prenom,
            grade=args.grade,
        )

        print("=== BOOTSTRAP OK ===")
        print("created =", created)
        print("email   =", u.email)
        print("rbac    =", ", ".join(u.role_codes) or "n/a")
        print("password reset done.")


if __name__ == "__main__":
    main()

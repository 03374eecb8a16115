import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))
DEFAULT_SECRET_KEY = "Unbureaudelaprotectionfonctionnellequicomptesesdossiersdanslajoie"


def _csv_env(name: str, default: str) -> list[str]:
    raw = os.environ.get(name, default)
    return [part.strip() for part in raw.split(",") if part.strip()]


class Config:
    SECRET_KEY = os.environ.get(
        "SECRET_KEY",
        DEFAULT_SECRET_KEY,
    )

    # --- DB -----------------------------------------------------------------
    # Priorité aux variables d'environnement (Postgres ou autre),
    # fallback SQLite local si rien n'est défini.
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    INSTANCE_DIR = os.path.join(BASE_DIR, "instance")

    DB_PATH = os.path.join(INSTANCE_DIR, "brpf.db")
    _default_sqlite_uri = "sqlite:///" + DB_PATH.replace("\\", "/")

    _db_url = (
        os.environ.get("SQLALCHEMY_DATABASE_URI")
        or os.environ.get("DATABASE_URL")
        or _default_sqlite_uri
    )

    # Compat anciens formats (Heroku-like)
    if _db_url.startswith("postgres://"):
        _db_url = _db_url.replace("postgres://", "postgresql://", 1)

    SQLALCHEMY_DATABASE_URI = _db_url

    # --- Logs ---------------------------------------------------------------
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

    # --- Statistiques -------------------------------------------------------
    # Rôles dont la charge de travail apparaît dans les statistiques administratives
    STATS_ROLES_SUIVI = _csv_env("STATS_ROLES_SUIVI", "ADMIN,GREFFIER,REDACTEUR")

    # Nombre de semaines renvoyées par défaut par l'encart "semaines récentes"
    STATS_RECENT_WEEKS = int(os.environ.get("STATS_RECENT_WEEKS", "10"))

    # Réapplique les templates de rôles au démarrage (dev / maintenance)
    RBAC_APPLY_TEMPLATES = os.environ.get("RBAC_APPLY_TEMPLATES", "").lower() in {"1", "true", "yes"}

    # L'API est consommée en JSON (GET) : pas de jeton CSRF sur les formulaires
    WTF_CSRF_CHECK_DEFAULT = False

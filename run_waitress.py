import os
from waitress import serve
from wsgi import app


def _safe_print(msg: str) -> None:
    """
    Evite que Windows Services / NSSM crashe sur l'encodage (cp1252).
    """
    try:
        print(msg)
    except UnicodeEncodeError:
        print(msg.encode("ascii", "ignore").decode("ascii"))


def _mask_db_url(db_url: str) -> str:
    # masque le mot de passe entre :// et @ en gardant l'utilisateur
    if "://" not in db_url or "@" not in db_url:
        return db_url
    scheme, rest = db_url.split("://", 1)
    creds, tail = rest.rsplit("@", 1)
    if ":" in creds:
        creds = f"{creds.split(':', 1)[0]}:***"
    return f"{scheme}://{creds}@{tail}"


if __name__ == "__main__":
    host = os.environ.get("BRPF_HOST", "127.0.0.1")
    port = int(os.environ.get("BRPF_PORT", "8000"))
    threads = int(os.environ.get("BRPF_THREADS", "8"))

    _safe_print("Starting BRPF statistiques (PostgreSQL/SQLite compatible) ...")
    _safe_print(f"Host={host}  Port={port}  Threads={threads}")
    db_url = os.environ.get("DATABASE_URL", "")
    if db_url:
        _safe_print(f"DATABASE_URL={_mask_db_url(db_url)}")

    serve(app, host=host, port=port, threads=threads)

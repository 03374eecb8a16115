import logging
import os

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from config import Config, DEFAULT_SECRET_KEY
from brpf.extensions import db, login_manager, csrf
from brpf.models import User


def create_app(config_class=Config):
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_class)

    # Dossier instance (base SQLite par défaut)
    instance_dir = app.config.get("INSTANCE_DIR") or app.instance_path
    os.makedirs(instance_dir, exist_ok=True)

    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))

    if app.config.get("SECRET_KEY") == DEFAULT_SECRET_KEY and not app.debug and not app.testing:
        app.logger.warning(
            "SECRET_KEY par défaut détectée. Définis SECRET_KEY via variable d'environnement pour la prod."
        )

    # Extensions
    db.init_app(app)
    login_manager.init_app(app)
    csrf.init_app(app)

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"error": "Authentification requise"}), 401

    # ------------------------------------------------------------------
    # Erreurs HTTP en JSON (l'API n'a pas de pages HTML)
    # ------------------------------------------------------------------
    @app.errorhandler(HTTPException)
    def _http_error(exc):
        return jsonify({"error": exc.description or exc.name}), exc.code

    # ------------------------------------------------------------------
    # Blueprints
    # ------------------------------------------------------------------
    from brpf.auth.routes import bp as auth_bp
    from brpf.statistiques.routes import bp as statistiques_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(statistiques_bp)

    # ------------------------------------------------------------------
    # INIT DB + RBAC + store des statistiques
    # ------------------------------------------------------------------
    from brpf.rbac import bootstrap_rbac
    from brpf.statistiques.store import SqlAlchemyStore

    with app.app_context():
        # 1) Créer les tables
        db.create_all()

        # 2) Bootstrap RBAC (idempotent)
        bootstrap_rbac()

        app.logger.info("DB URI = %s", db.engine.url.render_as_string(hide_password=True))
        app.logger.info("DB DIALECT = %s", db.engine.dialect.name)

    # Un seul store pour l'application, partagé par tous les rapports
    app.extensions["statistiques_store"] = SqlAlchemyStore(db.session, app.logger)

    return app

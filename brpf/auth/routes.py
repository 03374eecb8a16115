from flask import Blueprint, request, jsonify
from flask_login import login_user, logout_user, login_required, current_user

from brpf.extensions import csrf
from brpf.models import User

bp = Blueprint("auth", __name__, url_prefix="/auth")


def _user_payload(u: User) -> dict:
    return {
        "id": u.id,
        "email": u.email,
        "nom": u.nom,
        "prenom": u.prenom,
        "grade": u.grade,
        "role": u.role,
        "roles": u.role_codes,
        "permissions": sorted({p.code for r in u.roles for p in r.permissions}),
    }


@bp.route("/login", methods=["POST"])
@csrf.exempt
def login():
    data = request.get_json(silent=True) or request.form
    email = (data.get("email") or "").strip().lower()
    password = (data.get("password") or "").strip()

    u = User.query.filter_by(email=email).first()
    if not u or not u.check_password(password):
        return jsonify({"error": "Identifiants invalides."}), 401
    if not u.is_active:
        return jsonify({"error": "Compte désactivé."}), 403

    login_user(u)
    return jsonify(_user_payload(u))


@bp.route("/logout", methods=["POST"])
@csrf.exempt
@login_required
def logout():
    logout_user()
    return jsonify({"ok": True})


@bp.route("/me")
@login_required
def me():
    return jsonify(_user_payload(current_user))

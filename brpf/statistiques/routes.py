from __future__ import annotations

from io import BytesIO
from typing import Any, Callable, Dict

from flask import Blueprint, abort, current_app, jsonify, request, send_file
from flask_login import login_required

from brpf.rbac import can, require_perm

from .administratives import compute_breakdown, compute_qualite_demandeur, compute_workload, resolve_field
from .budgetaires import (
    compute_depenses_ordonnees,
    compute_depenses_par_mois,
    compute_depenses_par_pce,
    compute_depenses_par_sgami,
    compute_engagement_service_payeur,
    compute_engagements_mensuels,
    compute_statistiques_budgetaires,
)
from .controles import (
    compute_annees_disponibles,
    compute_auto_controle,
    compute_extraction_mensuelle,
    compute_reponse_brpf,
    compute_statistiques_bap,
)
from .filters import parse_limit, parse_year
from .flux import LIBELLE_MOYENNE, compute_flux_hebdomadaires, compute_flux_mensuels, compute_recent_weekly
from .serialization import build_workbook, clean, inline_summary

bp = Blueprint("statistiques", __name__, url_prefix="/api/statistiques")

ERREUR_CALCUL = "Erreur lors du calcul des statistiques"


def _store():
    return current_app.extensions["statistiques_store"]


def _year() -> int:
    return parse_year(request.args.get("year"))


def _roles_suivi():
    return current_app.config.get("STATS_ROLES_SUIVI") or None


def _compute(rapport: str, year, fn: Callable[..., Any], *args, **kwargs):
    """Calcule un rapport ; toute erreur est journalisée et le rapport n'est pas renvoyé."""
    try:
        return fn(_store(), *args, **kwargs), None
    except Exception:
        current_app.logger.exception("Statistiques: échec du rapport %s (année %s)", rapport, year)
        return None, (jsonify({"error": ERREUR_CALCUL}), 500)


def _report(rapport: str, fn: Callable[..., Any], *args, year=None, **kwargs):
    result, error = _compute(rapport, year, fn, *args, **kwargs)
    if error:
        return error
    return jsonify(clean(result))


# ---------------------------
# Référentiel
# ---------------------------

@bp.route("/annees")
@login_required
@require_perm("statistiques:view")
def annees():
    return _report("annees", compute_annees_disponibles)


# ---------------------------
# Administratives
# ---------------------------

@bp.route("/administratives")
@login_required
@require_perm("statistiques:view")
def administratives():
    year = _year()
    return _report("administratives", compute_workload, year, year=year, roles=_roles_suivi())


@bp.route("/qualite-demandeur")
@login_required
@require_perm("statistiques:view")
def qualite_demandeur():
    year = _year()
    return _report("qualite-demandeur", compute_qualite_demandeur, year, year=year)


@bp.route("/repartition/<champ>")
@login_required
@require_perm("statistiques:view")
def repartition(champ: str):
    try:
        field = resolve_field(champ)
    except ValueError:
        abort(404)
    year = _year()
    return _report(f"repartition/{field}", compute_breakdown, year, field, year=year)


@bp.route("/bap")
@login_required
@require_perm("statistiques:view")
def bap():
    year = _year()
    return _report("bap", compute_statistiques_bap, year, year=year)


# ---------------------------
# Flux
# ---------------------------

@bp.route("/flux-mensuels")
@login_required
@require_perm("statistiques:view")
def flux_mensuels():
    year = _year()
    return _report("flux-mensuels", compute_flux_mensuels, year, year=year)


@bp.route("/flux-hebdomadaires")
@login_required
@require_perm("statistiques:view")
def flux_hebdomadaires():
    year = _year()
    limit = parse_limit(request.args.get("limit"), default=0) or None
    return _report("flux-hebdomadaires", compute_flux_hebdomadaires, year, year=year, limit=limit)


@bp.route("/recent")
@login_required
@require_perm("statistiques:view")
def recent():
    default = int(current_app.config.get("STATS_RECENT_WEEKS", 10))
    limit = parse_limit(request.args.get("limit"), default=default)
    return _report("recent", compute_recent_weekly, limit=limit)


# ---------------------------
# Contrôles
# ---------------------------

@bp.route("/auto-controle")
@login_required
@require_perm("statistiques:view")
def auto_controle():
    year = _year()
    return _report("auto-controle", compute_auto_controle, year, year=year)


@bp.route("/extraction-mensuelle")
@login_required
@require_perm("statistiques:view")
def extraction_mensuelle():
    year = _year()
    return _report("extraction-mensuelle", compute_extraction_mensuelle, year, year=year)


@bp.route("/reponse-brpf")
@login_required
@require_perm("statistiques:view")
def reponse_brpf():
    year = _year()
    return _report("reponse-brpf", compute_reponse_brpf, year, year=year)


# ---------------------------
# Budgétaires
# ---------------------------

@bp.route("/budgetaires")
@login_required
@require_perm("statistiques:budget")
def budgetaires():
    year = _year()
    return _report("budgetaires", compute_statistiques_budgetaires, year, year=year)


@bp.route("/engagement-service-payeur")
@login_required
@require_perm("statistiques:budget")
def engagement_service_payeur():
    year = _year()
    return _report("engagement-service-payeur", compute_engagement_service_payeur, year, year=year)


@bp.route("/engagements-mensuels")
@login_required
@require_perm("statistiques:budget")
def engagements_mensuels():
    year = _year()
    return _report("engagements-mensuels", compute_engagements_mensuels, year, year=year)


@bp.route("/depenses-ordonnees")
@login_required
@require_perm("statistiques:budget")
def depenses_ordonnees():
    year = _year()
    return _report("depenses-ordonnees", compute_depenses_ordonnees, year, year=year)


@bp.route("/depenses-ordonnees/sgami")
@login_required
@require_perm("statistiques:budget")
def depenses_ordonnees_sgami():
    year = _year()
    return _report("depenses-ordonnees/sgami", compute_depenses_par_sgami, year, year=year)


@bp.route("/depenses-ordonnees/pce")
@login_required
@require_perm("statistiques:budget")
def depenses_ordonnees_pce():
    year = _year()
    return _report("depenses-ordonnees/pce", compute_depenses_par_pce, year, year=year)


@bp.route("/depenses-ordonnees/mois")
@login_required
@require_perm("statistiques:budget")
def depenses_ordonnees_mois():
    year = _year()
    return _report("depenses-ordonnees/mois", compute_depenses_par_mois, year, year=year)


# ---------------------------
# Export Excel
# ---------------------------

EXPORTS: Dict[str, Dict[str, Any]] = {
    "administratives": {
        "title": "Suivi par utilisateur",
        "compute": compute_workload,
        "rows": "utilisateurs",
        "columns": [
            ("nom", "Nom"),
            ("prenom", "Prénom"),
            ("role", "Rôle"),
            ("demandes_attribuees", "Demandes attribuées"),
            ("demandes_propres", "Demandes propres"),
            ("demandes_bap", "Demandes BAP"),
            ("decisions_repartition", "Décisions signées"),
            ("passage_aje_vers_pj", "Passage AJE vers PJ"),
            ("en_cours", "En cours"),
            ("en_cours_propre", "En cours propre"),
            ("en_cours_bap", "En cours BAP"),
        ],
    },
    "flux-mensuels": {
        "title": "Flux mensuels",
        "compute": compute_flux_mensuels,
        "rows": "flux_mensuels",
        "summary": "moyennes",
        "columns": [
            ("mois", "Mois"),
            ("entrants_annee", "Entrants"),
            ("sortants_annee", "Sortants"),
            ("entrants_annee_precedente", "Entrants N-1"),
        ],
    },
    "flux-hebdomadaires": {
        "title": "Flux hebdomadaires",
        "compute": compute_flux_hebdomadaires,
        "rows": "flux_hebdomadaires",
        "columns": [
            ("cle", "Semaine ISO"),
            ("date_debut", "Du"),
            ("date_fin", "Au"),
            ("entrants", "Entrants"),
            ("sortants", "Sortants"),
            ("difference", "Différence"),
            ("stock", "Stock"),
            ("entrants_annee_precedente", "Entrants N-1"),
        ],
    },
    "extraction-mensuelle": {
        "title": "Extraction mensuelle",
        "compute": compute_extraction_mensuelle,
        "rows": "donnees_par_mois",
        "summary": "moyenne_par_mois",
        "summary_label": ("mois", LIBELLE_MOYENNE),
        "columns": [
            ("mois", "Mois"),
            ("victimes", "Demandes victimes"),
            ("dont_reservistes", "dont réservistes"),
            ("cumul_victimes", "Cumul victimes"),
            ("cumul_reservistes", "Cumul réservistes"),
            ("violences", "Violences hors rébellion"),
            ("dont_violences_reservistes", "dont réservistes"),
            ("cumul_violences", "Cumul violences"),
            ("cumul_violences_reservistes", "Cumul violences réservistes"),
        ],
    },
    "reponse-brpf": {
        "title": "Réponse BRPF",
        "compute": compute_reponse_brpf,
        "rows": "statistiques",
        "columns": [("libelle", "Libellé"), ("nombre", "Nombre"), ("pourcentage", "%")],
    },
    "engagement-service-payeur": {
        "title": "Engagements par service payeur",
        "compute": compute_engagement_service_payeur,
        "rows": "engagements",
        "budget": True,
        "columns": [
            ("sgami", "SGAMI"),
            ("montant_total", "Montant HT"),
            ("pourcentage", "% budget"),
            ("prevision_10", "Prévision +10%"),
            ("pourcentage_prevision_10", "% budget"),
            ("prevision_20", "Prévision +20%"),
            ("pourcentage_prevision_20", "% budget"),
        ],
    },
    "engagements-mensuels": {
        "title": "Engagements mensuels",
        "compute": compute_engagements_mensuels,
        "rows": "engagements_mensuels",
        "summary": "total",
        "budget": True,
        "columns": [
            ("mois", "Mois"),
            ("montant_gage_ht", "Montant gagé HT"),
            ("pourcentage_montant_gage", "% budget"),
            ("cumule_ht", "Cumul HT"),
            ("pourcentage_cumule_ht", "% budget"),
            ("prevision_10", "Prévision +10%"),
            ("pourcentage_prevision_10", "% budget"),
            ("prevision_20", "Prévision +20%"),
            ("pourcentage_prevision_20", "% budget"),
            ("cumule_ttc", "Cumul TTC (estimé)"),
            ("pourcentage_cumule_ttc", "% budget"),
        ],
    },
    "depenses-ordonnees-sgami": {
        "title": "Dépenses ordonnées par SGAMI",
        "compute": compute_depenses_par_sgami,
        "rows": "statistiques",
        "summary": "total",
        "budget": True,
        "columns": [
            ("libelle", "SGAMI"),
            ("montant", "Montant TTC"),
            ("pourcentage", "% budget"),
            ("nombre_paiements", "Paiements"),
            ("montant_moyen", "Montant moyen"),
        ],
    },
    "depenses-ordonnees-pce": {
        "title": "Dépenses ordonnées par PCE",
        "compute": compute_depenses_par_pce,
        "rows": "statistiques",
        "summary": "total",
        "budget": True,
        "columns": [
            ("libelle", "PCE"),
            ("montant", "Montant TTC"),
            ("pourcentage", "% budget"),
            ("nombre_paiements", "Paiements"),
            ("montant_moyen", "Montant moyen"),
        ],
    },
    "depenses-ordonnees-mois": {
        "title": "Dépenses ordonnées par mois",
        "compute": compute_depenses_par_mois,
        "rows": "statistiques",
        "summary": "total",
        "budget": True,
        "columns": [
            ("libelle", "Mois"),
            ("montant_ttc_paiements", "TTC (mois du paiement)"),
            ("pourcentage_ttc", "% budget"),
            ("cumul_ttc", "Cumul TTC"),
            ("pourcentage_cumul_ttc", "% budget"),
            ("montant_ttc_dossiers", "TTC (mois du dossier)"),
            ("pourcentage_ttc_dossiers", "% budget"),
            ("cumul_ttc_dossiers", "Cumul TTC dossiers"),
            ("pourcentage_cumul_ttc_dossiers", "% budget"),
        ],
    },
}


@bp.route("/<rapport>/export.xlsx")
@login_required
@require_perm("statistiques:export")
def export_xlsx(rapport: str):
    cfg = EXPORTS.get(rapport)
    if not cfg:
        abort(404)
    if cfg.get("budget") and not can("statistiques:budget"):
        abort(403)

    year = _year()
    kwargs = {"roles": _roles_suivi()} if rapport == "administratives" else {}
    result, error = _compute(f"{rapport}/export", year, cfg["compute"], year, **kwargs)
    if error:
        return error

    summary = result.get(cfg["summary"]) if cfg.get("summary") else None
    if summary and cfg.get("summary_label"):
        key, label = cfg["summary_label"]
        summary = {key: label, **summary}
    rows = inline_summary(result.get(cfg["rows"]) or [], summary)

    wb = build_workbook(cfg["title"], cfg["columns"], rows, subtitle=f"Année {year}")

    bio = BytesIO()
    wb.save(bio)
    bio.seek(0)

    filename = f"statistiques_{rapport}_{year}.xlsx"
    return send_file(
        bio,
        as_attachment=True,
        download_name=filename,
        mimetype="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    )

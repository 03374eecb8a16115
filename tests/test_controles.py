from datetime import date, datetime

import pytest

from brpf.statistiques.controles import (
    QUALIF_VIOLENCES,
    STATUT_RESERVISTE,
    compute_annees_disponibles,
    compute_auto_controle,
    compute_extraction_mensuelle,
    compute_reponse_brpf,
    compute_statistiques_bap,
)


def test_bap_counts_sorted_descending(store) -> None:
    store.add_demande(1, datetime(2025, 1, 5), baps=["BAP Paris"])
    store.add_demande(2, datetime(2025, 2, 5), baps=["BAP Paris", "BAP Lyon"])
    store.add_demande(3, datetime(2025, 3, 5))
    store.add_demande(4, datetime(2025, 4, 5), baps=["BAP Lyon"])
    store.add_demande(5, datetime(2025, 5, 5), baps=["BAP Paris"])
    store.add_demande(6, datetime(2024, 5, 5), baps=["BAP Nice"])

    assert compute_statistiques_bap(store, 2025) == [
        {"nom_bap": "BAP Paris", "nombre_demandes": 3},
        {"nom_bap": "BAP Lyon", "nombre_demandes": 2},
    ]
    assert compute_statistiques_bap(store, 2019) == []


# ---------------------------
# Auto-contrôle
# ---------------------------

def _seed_auto_controle(store) -> None:
    store.add_demande(1, datetime(2025, 6, 1))
    store.add_demande(2, datetime(2025, 6, 21), baps=["BAP Paris"])
    store.add_demande(3, datetime(2025, 1, 1))
    store.add_decision(30, "PJ", datetime(2025, 1, 11), [3])
    store.add_demande(4, datetime(2025, 2, 1), baps=["BAP Lyon"], has_convention=True)
    store.add_decision(40, "AJ", datetime(2025, 3, 3), [4])
    store.add_decision(41, "PJ", datetime(2025, 4, 1), [4])
    # décision datée avant la réception
    store.add_demande(5, datetime(2025, 3, 10))
    store.add_decision(50, "AJ", datetime(2025, 3, 1), [5])


def test_auto_controle_indicators(store) -> None:
    _seed_auto_controle(store)
    report = compute_auto_controle(store, 2025, today=date(2025, 7, 1))

    assert report["pj_en_attente_convention"] == 1
    assert report["anciennete_moyenne_non_traites"] == pytest.approx(20)
    assert report["anciennete_moyenne_bap"] == pytest.approx(10)
    assert report["anciennete_moyenne_brpf"] == pytest.approx(30)


def test_processing_delay_uses_first_signature_and_skips_negative(store) -> None:
    _seed_auto_controle(store)
    report = compute_auto_controle(store, 2025, today=date(2025, 7, 1))

    assert report["delai_traitement_moyen"] == pytest.approx(20)
    assert report["delai_traitement_bap"] == pytest.approx(30)
    assert report["delai_traitement_brpf"] == pytest.approx(10)


def test_auto_controle_of_empty_year(store) -> None:
    report = compute_auto_controle(store, 2025, today=date(2025, 7, 1))
    assert all(v == 0 for v in report.values())


# ---------------------------
# Extraction mensuelle
# ---------------------------

def _seed_extraction(store) -> None:
    store.add_demande(
        1, datetime(2025, 1, 5),
        statut_demandeur=STATUT_RESERVISTE,
        qualification_infraction=QUALIF_VIOLENCES,
    )
    store.add_demande(2, datetime(2025, 1, 20), qualification_infraction="Outrage")
    store.add_demande(3, datetime(2025, 3, 3), qualification_infraction=QUALIF_VIOLENCES)
    store.add_demande(4, datetime(2025, 6, 2), statut_demandeur=STATUT_RESERVISTE)
    store.add_demande(5, datetime(2025, 2, 1), type="MIS_EN_CAUSE", statut_demandeur=STATUT_RESERVISTE)


def test_extraction_counts_victims_per_month(store) -> None:
    _seed_extraction(store)
    rows = compute_extraction_mensuelle(store, 2025, today=date(2025, 4, 15))["donnees_par_mois"]

    assert len(rows) == 12
    janvier = rows[0]
    assert (janvier["victimes"], janvier["dont_reservistes"], janvier["violences"], janvier["dont_violences_reservistes"]) == (2, 1, 1, 1)
    assert rows[1]["victimes"] == 0
    assert rows[2]["cumul_victimes"] == 3
    assert rows[2]["cumul_violences"] == 2
    assert rows[-1]["cumul_victimes"] == 4
    assert rows[-1]["cumul_reservistes"] == 2


def test_extraction_average_over_elapsed_or_filled_months(store) -> None:
    _seed_extraction(store)
    moyenne = compute_extraction_mensuelle(store, 2025, today=date(2025, 4, 15))["moyenne_par_mois"]

    # janvier, février, mars écoulés + juin renseigné
    assert moyenne["victimes"] == pytest.approx(1.0)
    assert moyenne["dont_reservistes"] == pytest.approx(0.5)
    assert moyenne["violences"] == pytest.approx(0.5)
    assert moyenne["dont_violences_reservistes"] == pytest.approx(0.25)


def test_extraction_of_past_year_averages_over_twelve_months(store) -> None:
    _seed_extraction(store)
    moyenne = compute_extraction_mensuelle(store, 2025, today=date(2026, 2, 1))["moyenne_par_mois"]
    assert moyenne["victimes"] == pytest.approx(4 / 12)


# ---------------------------
# Réponse BRPF
# ---------------------------

def _seed_reponse(store) -> None:
    for i in range(1, 8):
        store.add_demande(i, datetime(2024, 10, i))
    store.add_decision(1, "AJ", datetime(2025, 1, 10), [1, 2])
    store.add_decision(2, "PJ", datetime(2025, 2, 10), [3])
    store.add_decision(3, "REJET", datetime(2025, 3, 10), [4], motif_rejet="Accident de la circulation")
    store.add_decision(4, "REJET", datetime(2025, 4, 10), [5], motif_rejet="Absence d'infraction")
    store.add_decision(5, "REJET", datetime(2024, 12, 10), [6], motif_rejet="Absence d'infraction")
    store.add_decision(6, "AJE", None, [7])


def test_reponse_brpf_counts_links(store) -> None:
    _seed_reponse(store)
    report = compute_reponse_brpf(store, 2025)
    rows = {r["libelle"]: r for r in report["statistiques"]}

    assert report["totaux"] == {"total_decisions": 5, "agrement": 3, "rejet": 2}
    assert rows["AJ"]["nombre"] == 2
    assert rows["AJE"]["nombre"] == 0
    assert rows["AGRÉMENT"]["pourcentage"] == pytest.approx(60)
    assert rows["REJET"]["pourcentage"] == pytest.approx(40)


def test_rejection_reasons_are_shares_of_rejections(store) -> None:
    _seed_reponse(store)
    rows = compute_reponse_brpf(store, 2025)["statistiques"]

    assert [r["libelle"] for r in rows] == [
        "AGRÉMENT", "AJ", "AJE", "PJ", "REJET",
        "Accident de la circulation", "Absence d'infraction",
    ]
    motifs = [r for r in rows if r["type"] == "motif_rejet"]
    assert [r["pourcentage"] for r in motifs] == [pytest.approx(50), pytest.approx(50)]


def test_reponse_brpf_of_empty_year(store) -> None:
    report = compute_reponse_brpf(store, 2025)
    assert report["totaux"] == {"total_decisions": 0, "agrement": 0, "rejet": 0}
    assert len(report["statistiques"]) == 5
    assert all(r["pourcentage"] == 0 for r in report["statistiques"])


def test_annees_disponibles_most_recent_first(store) -> None:
    assert compute_annees_disponibles(store) == []
    store.add_demande(1, datetime(2023, 5, 1))
    store.add_demande(2, datetime(2025, 5, 1))
    store.add_demande(3, datetime(2025, 6, 1))
    assert compute_annees_disponibles(store) == [2025, 2023]

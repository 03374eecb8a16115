from datetime import date, datetime

import pytest

from brpf.statistiques.flux import (
    LIBELLE_MOYENNE,
    compute_flux_hebdomadaires,
    compute_flux_mensuels,
    compute_recent_weekly,
)


def _by_key(rows):
    return {r["cle"]: r for r in rows}


def test_requests_straddling_new_year_share_week_one(store) -> None:
    store.add_demande(1, datetime(2024, 12, 30, 9, 0))
    store.add_demande(2, datetime(2025, 1, 2, 14, 0))

    rows = _by_key(compute_flux_hebdomadaires(store, 2025)["flux_hebdomadaires"])
    assert rows["2025-01"]["entrants"] == 2
    assert rows["2025-01"]["date_debut"] == date(2024, 12, 30)
    assert rows["2025-01"]["date_fin"] == date(2025, 1, 5)


def test_empty_year_gives_dense_zero_series(store) -> None:
    report = compute_flux_hebdomadaires(store, 2025)
    rows = report["flux_hebdomadaires"]

    assert report["total_semaines"] == 53
    assert len(rows) == 53
    assert rows[0]["cle"] == "2025-01"
    assert rows[-1]["cle"] == "2026-01"
    assert all(r["entrants"] == r["sortants"] == r["stock"] == 0 for r in rows)
    assert report["annee"] == 2025
    assert report["annee_precedente"] == 2024


def test_stock_is_computed_before_truncation(store) -> None:
    for i in (1, 2, 3):
        store.add_demande(i, datetime(2025, 1, 7))
    store.add_decision(10, "PJ", datetime(2025, 3, 5), [1])

    report = compute_flux_hebdomadaires(store, 2025, limit=2)
    rows = report["flux_hebdomadaires"]

    assert [r["cle"] for r in rows] == ["2026-01", "2025-52"]
    assert [r["stock"] for r in rows] == [2, 2]
    assert report["total_semaines"] == 53


def test_stock_and_difference_follow_the_flows(store) -> None:
    store.add_demande(1, datetime(2025, 1, 7))
    store.add_demande(2, datetime(2025, 1, 8))
    store.add_decision(10, "AJ", datetime(2025, 1, 14), [1])

    rows = _by_key(compute_flux_hebdomadaires(store, 2025)["flux_hebdomadaires"])
    assert (rows["2025-02"]["entrants"], rows["2025-02"]["difference"], rows["2025-02"]["stock"]) == (2, 2, 2)
    assert (rows["2025-03"]["sortants"], rows["2025-03"]["difference"], rows["2025-03"]["stock"]) == (1, -1, 1)


def test_outflow_uses_earliest_signature_only(store) -> None:
    store.add_demande(1, datetime(2025, 2, 3))
    store.add_decision(10, "PJ", datetime(2025, 4, 1), [1])
    store.add_decision(11, "AJE", datetime(2025, 3, 3), [1])
    # demande reçue avant l'année : pas une sortie de l'année
    store.add_demande(2, datetime(2024, 6, 1))
    store.add_decision(12, "REJET", datetime(2025, 3, 4), [2])

    rows = compute_flux_hebdomadaires(store, 2025)["flux_hebdomadaires"]
    sorties = {r["cle"]: r["sortants"] for r in rows if r["sortants"]}
    assert sorties == {"2025-10": 1}


def test_previous_year_inflow_matched_by_week_number(store) -> None:
    store.add_demande(1, datetime(2024, 3, 5))  # semaine 10 de 2024
    rows = compute_flux_hebdomadaires(store, 2025)["flux_hebdomadaires"]
    by_key = _by_key(rows)

    assert by_key["2025-10"]["entrants_annee_precedente"] == 1
    assert by_key["2025-10"]["entrants"] == 0
    assert by_key["2026-01"]["entrants_annee_precedente"] == 0


def test_recent_weekly_is_most_recent_first(store) -> None:
    store.add_demande(1, datetime(2025, 3, 11))
    store.add_demande(2, datetime(2025, 3, 4))

    report = compute_recent_weekly(store, limit=3, today=date(2025, 3, 12))
    rows = report["semaines"]

    assert [r["cle"] for r in rows] == ["2025-11", "2025-10", "2025-09"]
    assert [r["entrants"] for r in rows] == [1, 1, 0]
    # du lundi 26/12/2022 au lundi 10/03/2025
    assert report["total_semaines"] == 116


# ---------------------------
# Flux mensuels
# ---------------------------

def _seed_monthly(store) -> None:
    store.add_demande(1, datetime(2025, 1, 15))
    store.add_demande(2, datetime(2025, 1, 20))
    store.add_demande(3, datetime(2025, 3, 1))
    store.add_demande(4, datetime(2024, 1, 5))
    store.add_decision(10, "PJ", datetime(2025, 2, 10), [1])
    store.add_decision(11, "REJET", datetime(2025, 2, 11), [4])


def test_monthly_flows_count_requests_of_the_year(store) -> None:
    _seed_monthly(store)
    rows = compute_flux_mensuels(store, 2025)["flux_mensuels"]

    assert len(rows) == 12
    assert rows[0] == {
        "mois": "Janvier",
        "entrants_annee": 2,
        "sortants_annee": 0,
        "entrants_annee_precedente": 1,
    }
    # la sortie de la demande 2024 n'est pas comptée
    assert rows[1]["sortants_annee"] == 1
    assert rows[2]["entrants_annee"] == 1


def test_monthly_averages_divide_by_twelve(store) -> None:
    _seed_monthly(store)
    moyennes = compute_flux_mensuels(store, 2025)["moyennes"]

    assert moyennes["mois"] == LIBELLE_MOYENNE
    assert moyennes["entrants_annee"] == pytest.approx(3 / 12)
    assert moyennes["sortants_annee"] == pytest.approx(1 / 12)
    assert moyennes["entrants_annee_precedente"] == pytest.approx(1 / 12)


def test_monthly_flows_of_empty_year(store) -> None:
    report = compute_flux_mensuels(store, 2025)
    assert [r["mois"] for r in report["flux_mensuels"]][-1] == "Décembre"
    assert all(
        r["entrants_annee"] == r["sortants_annee"] == r["entrants_annee_precedente"] == 0
        for r in report["flux_mensuels"]
    )
    assert report["moyennes"]["entrants_annee"] == 0

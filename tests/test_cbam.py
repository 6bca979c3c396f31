import pytest

from carbon_ledger.data.reference import ScenarioPriceRow
from carbon_ledger.engine.cbam import (
    ProjectionConfig,
    calculate_cbam_projection,
    projection_from_pcf,
    rounded_rows,
)

BASE = {
    "basis": "ACTUAL",
    "scope": "DIRECT_ONLY",
    "cert_price_scenario": "MID",
    "credit_eligible": False,
    "imported_qty": 110000,
    "cn_code": "7601",
    "sector": "Aluminium",
    "see_direct": 1.87,
    "see_indirect": 0.4,
}


def test_actual_direct_only_example():
    proj = calculate_cbam_projection(BASE)
    rows = proj["rows"]
    assert [r["year"] for r in rows] == list(range(2026, 2035))

    r26 = rows[0]
    assert r26["intensity"] == pytest.approx(1.87)
    assert r26["embedded_emissions"] == pytest.approx(205700)
    assert r26["payable_emissions"] == pytest.approx(5142.5)
    assert r26["cert_price"] == 93
    assert r26["gross_cost"] == pytest.approx(478252.5)
    assert r26["deduction"] == 0
    assert r26["net_cost"] == pytest.approx(478252.5)
    assert r26["cost_per_tonne"] == pytest.approx(478252.5 / 110000)
    assert r26["cost_pct_of_price"] == pytest.approx(478252.5 / 110000 / 2500 * 100)


def test_total_scope_adds_indirect():
    proj = calculate_cbam_projection({**BASE, "scope": "TOTAL"})
    assert proj["rows"][0]["intensity"] == pytest.approx(2.27)
    assert proj["metadata"]["effective_scope"] == "TOTAL"


def test_scope_falls_back_to_sector_rule():
    proj = calculate_cbam_projection({**BASE, "scope": None, "sector": "Cement"})
    assert proj["metadata"]["effective_scope"] == "TOTAL"
    proj = calculate_cbam_projection({**BASE, "scope": None})
    assert proj["metadata"]["effective_scope"] == "DIRECT_ONLY"


def test_deduction_uses_embedded_emissions():
    proj = calculate_cbam_projection({**BASE, "credit_eligible": True, "credit_scenario": "HIGH"})
    r26 = proj["rows"][0]
    assert r26["credit_price"] == 10
    assert r26["quota_share"] == 0.0125
    assert r26["deduction"] == pytest.approx(10 * 205700 * 0.0125)
    assert r26["net_cost"] == pytest.approx(478252.5 - 25712.5)


def test_net_cost_never_negative():
    proj = calculate_cbam_projection({**BASE, "credit_eligible": True, "credit_scenario": "HIGH", "cert_price_scenario": "LOW"})
    assert all(r["net_cost"] >= 0 for r in proj["rows"])


def test_credit_none_or_unknown_scenario_gives_no_deduction():
    for scenario in ("NONE", "FOO"):
        proj = calculate_cbam_projection({**BASE, "credit_eligible": True, "credit_scenario": scenario})
        assert proj["totals"]["deduction"] == 0


def test_unknown_cert_scenario_falls_back_to_mid():
    proj = calculate_cbam_projection({**BASE, "cert_price_scenario": "XYZ"})
    assert proj["rows"][0]["cert_price"] == 93


def test_default_basis_applies_markup():
    proj = calculate_cbam_projection({**BASE, "basis": "DEFAULT"})
    rows = {r["year"]: r for r in proj["rows"]}
    assert rows[2026]["markup"] == 0.10
    assert rows[2026]["intensity"] == pytest.approx(1.87 * 1.10)
    assert rows[2027]["intensity"] == pytest.approx(1.87 * 1.20)
    assert rows[2034]["intensity"] == pytest.approx(1.87 * 1.30)
    assert proj["metadata"]["default_entry"]["cn_code"] == "7601"


def test_fertiliser_markup_capped_at_one_percent():
    proj = calculate_cbam_projection(
        {**BASE, "basis": "DEFAULT", "scope": None, "sector": "Fertilisers", "cn_code": "2814 10 00"}
    )
    for r in proj["rows"]:
        assert r["markup"] == 0.01
        assert r["intensity"] == pytest.approx(2.30 * 1.01)


def test_missing_default_entry_resolves_to_zero_with_warning():
    proj = calculate_cbam_projection({**BASE, "basis": "DEFAULT", "cn_code": "9999 99"})
    assert proj["totals"]["gross_cost"] == 0
    assert proj["metadata"]["default_entry"] is None
    assert any("9999 99" in w for w in proj["metadata"]["warnings"])


def test_zero_quantity_guards_cost_per_tonne():
    proj = calculate_cbam_projection({**BASE, "imported_qty": 0})
    assert all(r["cost_per_tonne"] == 0 for r in proj["rows"])


def test_invalid_numbers_are_coerced():
    cfg = ProjectionConfig.model_validate({"imported_qty": "abc", "see_direct": -3, "see_indirect": None})
    assert cfg.imported_qty == 0
    assert cfg.see_direct == 0
    assert cfg.see_indirect == 0


def test_enums_are_normalized():
    cfg = ProjectionConfig.model_validate({"basis": "default", "scope": "total", "credit_scenario": "low"})
    assert cfg.basis == "DEFAULT"
    assert cfg.scope == "TOTAL"
    assert cfg.credit_scenario == "LOW"
    assert ProjectionConfig.model_validate({"basis": "???", "scope": "???"}).scope is None


def test_camel_case_keys_accepted():
    proj = calculate_cbam_projection(
        {"importedQty": 110000, "seeDirect": 1.87, "carbonCreditEligible": False, "goodCategory": "Aluminium"}
    )
    assert proj["rows"][0]["gross_cost"] == pytest.approx(478252.5)


def test_defaults_follow_settings(monkeypatch):
    cfg = ProjectionConfig()
    assert cfg.sector == "Aluminium"
    assert cfg.credit_scenario == "HIGH"
    assert cfg.credit_eligible is True

    monkeypatch.setenv("CARBON_LEDGER_DEFAULT_SECTOR", "Cement")
    from carbon_ledger.config import get_settings

    get_settings.cache_clear()
    assert ProjectionConfig().sector == "Cement"


def test_totals_sum_rows():
    proj = calculate_cbam_projection({**BASE, "credit_eligible": True})
    for k in ("gross_cost", "deduction", "net_cost", "embedded_emissions", "payable_emissions"):
        assert proj["totals"][k] == pytest.approx(sum(r[k] for r in proj["rows"]))


def test_hashes_are_stable():
    a = calculate_cbam_projection(BASE)["metadata"]
    b = calculate_cbam_projection(dict(BASE))["metadata"]
    assert a["input_hash"] == b["input_hash"]
    assert a["result_hash"] == b["result_hash"]
    c = calculate_cbam_projection({**BASE, "imported_qty": 1})["metadata"]
    assert c["input_hash"] != a["input_hash"]


def test_missing_price_year_degrades_to_zero(tables):
    only_2026 = (ScenarioPriceRow(2026, 74.4, 93, 111.6),)
    proj = calculate_cbam_projection(BASE, tables.replace(cert_price=only_2026))
    rows = {r["year"]: r for r in proj["rows"]}
    assert rows[2026]["gross_cost"] == pytest.approx(478252.5)
    assert rows[2027]["cert_price"] == 0
    assert rows[2027]["gross_cost"] == 0
    assert any("2027" in w for w in proj["metadata"]["warnings"])


def test_rounded_rows_display_precision():
    rows = rounded_rows(calculate_cbam_projection(BASE)["rows"])
    assert rows[0]["gross_cost"] == 478253
    assert rows[0]["payable_emissions"] == 5143
    assert rows[0]["intensity"] == 1.87
    assert rows[0]["cert_price"] == 93


def test_projection_from_pcf_row():
    row = {"product_id": "ingot", "cn_code": "7601", "see_direct": 1.87, "see_indirect": 0.4}
    proj = projection_from_pcf(row, imported_qty=110000, credit_eligible=False)
    assert proj["metadata"]["basis"] == "ACTUAL"
    assert proj["rows"][0]["gross_cost"] == pytest.approx(478252.5)

import pytest

from carbon_ledger.engine.cbam import ProjectionConfig
from carbon_ledger.engine.scenarios import (
    compare_cert_price_scenarios,
    compare_credit_scenarios,
    compare_scenarios,
    comparison_frame,
)

BASE = {
    "basis": "ACTUAL",
    "scope": "TOTAL",
    "imported_qty": 110000,
    "cn_code": "7601",
    "sector": "Aluminium",
    "see_direct": 1.87,
    "see_indirect": 0.4,
    "credit_eligible": True,
    "credit_scenario": "HIGH",
}


def test_cert_price_scenarios_are_monotone():
    results = compare_cert_price_scenarios(BASE)
    assert [r["name"] for r in results] == ["low", "mid", "high"]
    assert results[0]["label"] == "Low Carbon Price"
    assert results[2]["color"] == "#ef4444"

    low, mid, high = (r["projection"]["rows"] for r in results)
    for a, b, c in zip(low, mid, high):
        assert a["net_cost"] <= b["net_cost"] <= c["net_cost"]


def test_overrides_are_shallow_merged_without_leaking():
    base = dict(BASE)
    results = compare_scenarios(
        base,
        [
            {"name": "double", "label": "2x volume", "overrides": {"imported_qty": 220000}},
            {"name": "base", "label": "Base", "overrides": {}},
        ],
    )
    double, same = results
    assert double["projection"]["totals"]["embedded_emissions"] == pytest.approx(
        2 * same["projection"]["totals"]["embedded_emissions"]
    )
    assert base == BASE
    assert double["color"] is None


def test_camel_case_overrides_merge_onto_snake_case_base():
    results = compare_scenarios(BASE, [{"name": "low", "overrides": {"certPriceScenario": "LOW"}}])
    assert results[0]["projection"]["rows"][0]["cert_price"] == 74.4


def test_runs_are_order_independent():
    scs = [
        {"name": "a", "overrides": {"cert_price_scenario": "HIGH"}},
        {"name": "b", "overrides": {"basis": "DEFAULT"}},
    ]
    forward = compare_scenarios(BASE, scs)
    backward = compare_scenarios(BASE, list(reversed(scs)))
    by_name = {r["name"]: r["projection"]["metadata"]["result_hash"] for r in backward}
    for r in forward:
        assert by_name[r["name"]] == r["projection"]["metadata"]["result_hash"]


def test_base_config_model_is_accepted():
    cfg = ProjectionConfig.model_validate(BASE)
    results = compare_cert_price_scenarios(cfg)
    assert results[1]["projection"]["rows"][0]["cert_price"] == 93


def test_credit_scenarios():
    results = compare_credit_scenarios({**BASE, "credit_eligible": False})
    totals = {r["name"]: r["projection"]["totals"] for r in results}
    assert totals["none"]["deduction"] == 0
    assert 0 < totals["low"]["deduction"] <= totals["mid"]["deduction"] <= totals["high"]["deduction"]
    assert totals["high"]["net_cost"] <= totals["none"]["net_cost"]


def test_comparison_frame():
    df = comparison_frame(compare_cert_price_scenarios(BASE))
    assert len(df) == 27
    assert set(df["scenario"]) == {"low", "mid", "high"}
    y26 = df[df["year"] == 2026].set_index("scenario")
    assert y26.loc["low", "net_cost"] <= y26.loc["high", "net_cost"]
    assert comparison_frame([]).empty

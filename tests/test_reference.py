import pandas as pd
import pytest

from carbon_ledger.data.reference import (
    PROJECTION_YEARS,
    GwpSet,
    MarkupRow,
    PhaseInRow,
    check_reference_tables,
    default_intensities_from_frame,
)


def test_default_tables_are_consistent(tables):
    assert check_reference_tables(tables) == []


def test_payable_share_monotone_and_bounded(tables):
    shares = [tables.payable_share(y) for y in PROJECTION_YEARS]
    assert shares[0] == 0.025
    assert shares[-1] == 1.0
    assert all(b >= a for a, b in zip(shares, shares[1:]))
    assert tables.payable_share(2025) == 0
    assert tables.payable_share(2040) == 1.0


def test_markup_schedules(tables):
    assert [tables.markup(y, "Aluminium") for y in (2026, 2027, 2028, 2034)] == [0.10, 0.20, 0.30, 0.30]
    assert {tables.markup(y, "Fertilisers") for y in PROJECTION_YEARS} == {0.01}
    assert tables.markup(2040, "Cement") == 0.30


def test_gwp_co2_is_one(tables):
    assert tables.gwp("CO2") == 1
    assert tables.gwp("c2f6") == 11100
    assert tables.gwp("SF6") == 1


def test_prices(tables):
    assert tables.cert_price_for(2026, "MID") == 93
    assert tables.cert_price_for(2026, "high") == 111.6
    assert tables.cert_price_for(2026, "bogus") == 93
    assert tables.cert_price_for(2040, "MID") == 0
    assert tables.credit_for(2026, "HIGH") == (10, 0.0125)
    assert tables.credit_for(2026, "bogus") == (0, 0.0125)
    assert tables.credit_for(2040, "HIGH") == (0, 0)
    assert tables.commodity_price_for(2034, "LOW") == 2550


def test_default_entries_and_cn_lookup(tables):
    assert tables.default_entry("7601").direct == 1.87
    assert tables.default_entry("7604.10.10").name == "Bars and rods"
    assert tables.default_entry("") is None
    assert tables.default_entry("0000") is None

    assert tables.is_complex("7607") is True
    assert tables.is_complex("7601 10 00") is False
    # longest registry prefix
    assert tables.cn_info("7202 11 20").name == "Ferro-manganese"
    assert tables.is_complex("9999") is False


def test_default_intensity_scope():
    from carbon_ledger.data.reference import DefaultIntensity

    d = DefaultIntensity("x", "X", "Iron & Steel", 1.0, None, None)
    assert d.intensity("TOTAL") == 1.0
    d2 = DefaultIntensity("y", "Y", "Cement", 1.35, 0.04, 1.39)
    assert d2.intensity("DIRECT_ONLY") == 1.35
    assert d2.intensity("TOTAL") == 1.39


def test_grid_and_fuels(tables):
    assert tables.grid_ef("nl") == 0.328
    assert tables.grid_ef("XX") == 0
    assert tables.fuel_default("Natural Gas").ncv == 48.0
    assert tables.fuel_default("unknown").name == "Other (custom)"


def test_check_reports_violations(tables):
    broken = tables.replace(
        phase_in=(PhaseInRow(2026, 0.9, 0.1), PhaseInRow(2027, 0.95, 0.05)),
        markup_schedules={"standard": (MarkupRow(2026, 0.4), MarkupRow(2027, 0.2)), "fertilisers": ()},
        gwp_set=GwpSet("X", "X", {"CO2": 2.0}),
    )
    issues = check_reference_tables(broken)
    assert any("decreases" in i for i in issues)
    assert any("2026" in i for i in issues)
    assert any("2034" in i for i in issues)
    assert any("not non-decreasing" in i for i in issues)
    assert any("exceeds cap" in i for i in issues)
    assert any("CO2" in i for i in issues)


def test_replace_does_not_mutate_defaults(tables):
    other = tables.replace(cert_price=())
    assert other.cert_price == ()
    assert tables.cert_price_for(2026, "MID") == 93


def test_default_intensities_from_frame():
    df = pd.DataFrame(
        {
            "CN Code": ["7601", "2523 10 00", None],
            "Name": ["Unwrought", "Clinker", "skip"],
            "Sector": ["Aluminium", "Cement", ""],
            "Direct_Intensity": [1.87, 1.35, 9.0],
            "Indirect_Intensity": [None, 0.04, None],
        }
    )
    rows = default_intensities_from_frame(df)
    assert len(rows) == 2
    assert rows[0].indirect is None
    assert rows[0].total == pytest.approx(1.87)
    assert rows[1].total == pytest.approx(1.39)
    assert default_intensities_from_frame(pd.DataFrame()) == ()
    assert default_intensities_from_frame(pd.DataFrame({"foo": [1]})) == ()


def test_default_intensities_skip_nan_cells():
    df = pd.DataFrame(
        {
            "cn_code": ["7601", float("nan")],
            "route": [float("nan"), "EAF"],
            "direct": [1.87, 9.0],
        }
    )
    rows = default_intensities_from_frame(df)
    assert [r.cn_code for r in rows] == ["7601"]
    assert rows[0].route is None
    assert rows[0].name == ""


STEEL_COMPLEX_CODES = (
    "7206", "7207", "7208", "7209", "7210", "7211", "7213", "7214", "7215", "7216",
    "7217", "7218", "7219", "7220", "7221 00", "7222", "7223 00", "7224", "7225",
    "7226", "7228", "7229", "7301", "7302", "7303 00", "7304", "7305", "7306",
    "7307", "7308", "7309 00", "7310", "7311 00", "7318", "7326",
)


def test_cn_registry_covers_steel_articles(tables):
    codes = [c.code for c in tables.cn_codes]
    assert len(codes) == len(set(codes)) == 62
    for code in STEEL_COMPLEX_CODES:
        info = tables.cn_info(code)
        assert info is not None and info.code == code
        assert info.sector == "Iron & Steel"
        assert info.is_complex
    assert tables.is_complex("7215 10 00")
    assert not tables.is_complex("7203 10 00")

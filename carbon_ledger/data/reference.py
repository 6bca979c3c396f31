from __future__ import annotations

"""Static regulatory / market reference tables.

Sources:
  - IPCC 2006 Guidelines Vol.2 Ch.2 (fuel NCV / emission factors)
  - EU Reg. 2025/2547 Annex II Table 6 (GWP set used for CBAM)
  - EU ETS free allocation phase-out 2026-2034 (CBAM phase-in)
  - EU Reg. 2025/2621 (default values + markup schedule)
  - Market scenario tables of the installation model (EUA, credit, aluminium price)

Tables are immutable and passed explicitly into every engine entry point;
tests swap them with ReferenceTables.replace(...).
"""

import dataclasses
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

import pandas as pd

logger = logging.getLogger(__name__)

SCENARIOS = ("LOW", "MID", "HIGH")
PROJECTION_YEARS = tuple(range(2026, 2035))
STANDARD_MARKUP_CAP = 0.30
FERTILISER_MARKUP_CAP = 0.01


def _norm(s: Any) -> str:
    return str(s or "").strip().lower().replace(" ", "_")


def _clean_cn(cn: Any) -> str:
    return str(cn or "").strip().replace(".", "").replace(" ", "")


def _to_float(x: Any) -> float:
    try:
        if pd.isna(x):
            return 0.0
    except (TypeError, ValueError):
        pass
    try:
        return float(x)
    except (TypeError, ValueError):
        return 0.0


def _non_negative(x: Any) -> float:
    f = _to_float(x)
    return f if f > 0 else 0.0


def _text(x: Any) -> str:
    if x is None:
        return ""
    try:
        if pd.isna(x):
            return ""
    except (TypeError, ValueError):
        pass
    return str(x).strip()


def _opt_float(x: Any) -> Optional[float]:
    try:
        if x is None or pd.isna(x):
            return None
    except (TypeError, ValueError):
        pass
    try:
        return float(x)
    except (TypeError, ValueError):
        return None


# ----------------------------
# Row types
# ----------------------------
@dataclass(frozen=True)
class FuelDefault:
    name: str
    ncv: float  # GJ/t
    ef_co2: float  # kg/TJ
    ef_ch4: float
    ef_n2o: float
    source: str
    ncv_unit: str = "GJ/t"
    default_unit: str = "t"


@dataclass(frozen=True)
class GwpSet:
    id: str
    name: str
    values: Mapping[str, float]

    def factor(self, gas: str, default: float = 1.0) -> float:
        v = self.values.get(str(gas or "").upper())
        return float(v) if v is not None else float(default)

    def knows(self, gas: str) -> bool:
        return str(gas or "").upper() in self.values

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, **dict(self.values)}


@dataclass(frozen=True)
class PhaseInRow:
    year: int
    free_allocation: float
    payable_share: float


@dataclass(frozen=True)
class ScenarioPriceRow:
    year: int
    low: float
    mid: float
    high: float

    def price(self, scenario: str) -> Optional[float]:
        """Price for LOW/MID/HIGH; None if the scenario key does not exist."""
        key = _norm(scenario)
        if key in ("low", "mid", "high"):
            return float(getattr(self, key))
        return None


@dataclass(frozen=True)
class CreditPriceRow(ScenarioPriceRow):
    quota_share: float = 0.0


@dataclass(frozen=True)
class MarkupRow:
    year: int
    rate: float


@dataclass(frozen=True)
class DefaultIntensity:
    cn_code: str
    name: str
    sector: str
    direct: float
    indirect: Optional[float]
    total: Optional[float]
    route: Optional[str] = None

    def intensity(self, scope: str) -> float:
        if scope == "DIRECT_ONLY":
            return float(self.direct)
        return float(self.total if self.total else self.direct)

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)


@dataclass(frozen=True)
class CnCode:
    code: str
    name: str
    sector: str
    is_complex: bool


@dataclass(frozen=True)
class GridFactor:
    code: str
    name: str
    ef: float


# ----------------------------
# Default data
# ----------------------------
_IPCC = "IPCC 2006 Vol.2 Ch.2 Table 2.2"

FUEL_DEFAULTS: Mapping[str, FuelDefault] = MappingProxyType(
    {
        "natural_gas": FuelDefault("Natural Gas", 48.0, 56100, 5, 0.1, _IPCC),
        "diesel": FuelDefault("Diesel", 43.0, 74100, 3, 0.6, _IPCC),
        "coke": FuelDefault("Coke", 28.2, 107000, 1, 1.5, "IPCC 2006 Vol.2 Ch.2 Table 2.3 (anode/carbon)"),
        "fuel_oil": FuelDefault("Fuel Oil (Heavy)", 40.4, 77400, 3, 0.6, _IPCC),
        "lpg": FuelDefault("LPG", 47.3, 63100, 1, 0.1, _IPCC),
        "custom": FuelDefault("Other (custom)", 0.0, 0.0, 0.0, 0.0, "User-defined"),
    }
)

GWP_EU_CBAM_2025 = GwpSet(
    id="EU_CBAM_2025",
    name="EU CBAM 2025/2547",
    values=MappingProxyType({"CO2": 1.0, "CH4": 29.8, "N2O": 265.0, "CF4": 6630.0, "C2F6": 11100.0}),
)

PHASE_IN: Tuple[PhaseInRow, ...] = (
    PhaseInRow(2026, 0.975, 0.025),
    PhaseInRow(2027, 0.950, 0.050),
    PhaseInRow(2028, 0.900, 0.100),
    PhaseInRow(2029, 0.825, 0.175),
    PhaseInRow(2030, 0.725, 0.275),
    PhaseInRow(2031, 0.600, 0.400),
    PhaseInRow(2032, 0.450, 0.550),
    PhaseInRow(2033, 0.250, 0.750),
    PhaseInRow(2034, 0.000, 1.000),
)

# EUA certificate price, EUR/tCO2
CERT_PRICE: Tuple[ScenarioPriceRow, ...] = (
    ScenarioPriceRow(2026, 74.4, 93, 111.6),
    ScenarioPriceRow(2027, 76.0, 95, 114.0),
    ScenarioPriceRow(2028, 78.4, 98, 117.6),
    ScenarioPriceRow(2029, 80.8, 101, 121.2),
    ScenarioPriceRow(2030, 84.0, 105, 126.0),
    ScenarioPriceRow(2031, 88.0, 110, 132.0),
    ScenarioPriceRow(2032, 92.0, 115, 138.0),
    ScenarioPriceRow(2033, 96.0, 120, 144.0),
    ScenarioPriceRow(2034, 100.0, 125, 150.0),
)

# Carbon price paid in the country of origin (deduction), EUR/tCO2 + quota share
CREDIT_PRICE: Tuple[CreditPriceRow, ...] = (
    CreditPriceRow(2026, 1, 5, 10, quota_share=0.0125),
    CreditPriceRow(2027, 1.5, 5, 10, quota_share=0.025),
    CreditPriceRow(2028, 2, 5, 10, quota_share=0.050),
    CreditPriceRow(2029, 2.5, 7.5, 12.5, quota_share=0.100),
    CreditPriceRow(2030, 3, 10, 15, quota_share=0.150),
    CreditPriceRow(2031, 4, 12, 18, quota_share=0.200),
    CreditPriceRow(2032, 5, 15, 20, quota_share=0.250),
    CreditPriceRow(2033, 6, 18, 25, quota_share=0.300),
    CreditPriceRow(2034, 8, 20, 30, quota_share=0.350),
)

# Reference commodity (LME aluminium) price, $/t
COMMODITY_PRICE: Tuple[ScenarioPriceRow, ...] = (
    ScenarioPriceRow(2026, 2125, 2500, 2875),
    ScenarioPriceRow(2027, 2200, 2600, 3000),
    ScenarioPriceRow(2028, 2250, 2650, 3050),
    ScenarioPriceRow(2029, 2300, 2700, 3100),
    ScenarioPriceRow(2030, 2350, 2800, 3250),
    ScenarioPriceRow(2031, 2400, 2850, 3300),
    ScenarioPriceRow(2032, 2450, 2900, 3350),
    ScenarioPriceRow(2033, 2500, 2950, 3400),
    ScenarioPriceRow(2034, 2550, 3000, 3450),
)

MARKUP_SCHEDULES: Mapping[str, Tuple[MarkupRow, ...]] = MappingProxyType(
    {
        # Cement, Aluminium, Iron & Steel, Hydrogen: flat 30% from 2028
        "standard": (MarkupRow(2026, 0.10), MarkupRow(2027, 0.20))
        + tuple(MarkupRow(y, STANDARD_MARKUP_CAP) for y in range(2028, 2035)),
        "fertilisers": tuple(MarkupRow(y, FERTILISER_MARKUP_CAP) for y in PROJECTION_YEARS),
    }
)


def _al(cn: str, name: str, direct: float) -> DefaultIntensity:
    # no indirect default exists for aluminium
    return DefaultIntensity(cn, name, "Aluminium", direct, None, direct, "K")


DEFAULT_INTENSITIES: Tuple[DefaultIntensity, ...] = (
    _al("7601", "Unwrought aluminium", 1.870),
    _al("7603", "Al powders and flakes", 1.990),
    _al("7604 10 10", "Bars and rods", 2.210),
    _al("7604 10 90", "Profiles", 2.230),
    _al("7604 21 00", "Hollow profiles", 2.230),
    _al("7605", "Al wire", 2.210),
    _al("7606", "Al plates/sheets/strip", 2.670),
    _al("7607", "Al foil", 2.670),
    _al("7608", "Al tubes/pipes", 2.230),
    _al("7609 00 00", "Al tube/pipe fittings", 2.230),
    _al("7610", "Al structures", 2.230),
    _al("7611 00 00", "Al reservoirs (>300L)", 2.670),
    _al("7612", "Al containers (<=300L)", 2.670),
    _al("7613 00 00", "Al gas containers", 2.670),
    _al("7614", "Al stranded wire/cables", 2.210),
    _al("7616 10 00", "Al fasteners", 2.670),
    _al("7616 91 00", "Al cloth/grill/netting", 2.670),
    _al("7616 99 10", "Al cast articles", 1.990),
    _al("7616 99 90", "Al other articles", 2.670),
    DefaultIntensity("2523 10 00", "Grey clinker", "Cement", 1.350, 0.040, 1.390, "A"),
    DefaultIntensity("2523 29 00", "Grey Portland cement", "Cement", 1.350, 0.070, 1.420),
    DefaultIntensity("2523 90 00", "Grey hydraulic cements", "Cement", 1.280, 0.070, 1.350, "A"),
    DefaultIntensity("2808 00 00", "Nitric acid", "Fertilisers", 2.730, 0.040, 2.770),
    DefaultIntensity("2814 10 00", "Anhydrous ammonia", "Fertilisers", 2.160, 0.140, 2.300),
    DefaultIntensity("2814 20 00", "Ammonia in aqueous solution", "Fertilisers", 0.650, 0.040, 0.690),
    DefaultIntensity("3102 10 19", "Urea (>45% N)", "Fertilisers", 1.470, 0.110, 1.580),
    DefaultIntensity("3102 30 90", "Ammonium nitrate", "Fertilisers", 2.570, 0.110, 2.670),
    DefaultIntensity("3102 40 10", "AN/CaCO3 (<=28% N)", "Fertilisers", 2.200, 0.100, 2.300),
    DefaultIntensity("3105 30 00", "DAP", "Fertilisers", 0.510, 0.060, 0.570),
    DefaultIntensity("2601 12 00", "Agglomerated iron ore", "Iron & Steel", 0.170, 0.170, 0.340),
    DefaultIntensity("7201", "Pig iron", "Iron & Steel", 4.960, None, 4.960),
    DefaultIntensity("7202 11", "Ferro-Mn (>2% C)", "Iron & Steel", 1.690, None, 1.690),
    DefaultIntensity("7202 41", "Ferro-Cr (>4% C)", "Iron & Steel", 2.350, None, 2.350),
    DefaultIntensity("7206 10 00", "Iron/steel ingots", "Iron & Steel", 5.180, None, 5.180, "C"),
    DefaultIntensity("7207", "Semi-finished products", "Iron & Steel", 5.180, None, 5.180, "C"),
    DefaultIntensity("7208", "Flat-rolled (>=600mm, HR)", "Iron & Steel", 5.340, None, 5.340, "C"),
    DefaultIntensity("7209", "Flat-rolled (>=600mm, CR)", "Iron & Steel", 5.420, None, 5.420, "C"),
    DefaultIntensity("2804 10 00", "Hydrogen", "Hydrogen", 10.820, None, 10.820),
)

SCOPE_RULES: Mapping[str, str] = MappingProxyType(
    {
        "Aluminium": "DIRECT_ONLY",
        "Cement": "TOTAL",
        "Fertilisers": "TOTAL",
        "Iron & Steel": "DIRECT_ONLY",
        "Hydrogen": "DIRECT_ONLY",
        "Electricity": "DIRECT_ONLY",
    }
)


def _cn(code: str, name: str, sector: str, is_complex: bool) -> CnCode:
    return CnCode(code, name, sector, is_complex)


CN_CODES: Tuple[CnCode, ...] = (
    _cn("2523 10 00", "Cement Clinker", "Cement", False),
    _cn("2523 21 00", "White Portland Cement", "Cement", True),
    _cn("2523 29 00", "Other Portland Cement", "Cement", True),
    _cn("2523 90 00", "Other Hydraulic Cements", "Cement", True),
    _cn("2601 12 00", "Iron Ore (agglomerated)", "Iron & Steel", False),
    _cn("7201", "Pig Iron", "Iron & Steel", False),
    _cn("7202 1", "Ferro-manganese", "Iron & Steel", False),
    _cn("7202 4", "Ferro-chromium", "Iron & Steel", False),
    _cn("7202 6", "Ferro-nickel", "Iron & Steel", False),
    _cn("7203", "DRI / Sponge Iron", "Iron & Steel", False),
    _cn("7206", "Iron (ingots etc.)", "Iron & Steel", True),
    _cn("7207", "Semi-finished Steel", "Iron & Steel", True),
    _cn("7208", "Hot-rolled Flat Products", "Iron & Steel", True),
    _cn("7209", "Cold-rolled Flat Products", "Iron & Steel", True),
    _cn("7210", "Coated Flat Products", "Iron & Steel", True),
    _cn("7211", "Flat Products < 600mm", "Iron & Steel", True),
    _cn("7213", "Hot-rolled Bars/Rods", "Iron & Steel", True),
    _cn("7214", "Other Bars/Rods", "Iron & Steel", True),
    _cn("7215", "Other Bars (cold-formed)", "Iron & Steel", True),
    _cn("7216", "Angles, Shapes, Sections", "Iron & Steel", True),
    _cn("7217", "Wire of Iron/Steel", "Iron & Steel", True),
    _cn("7218", "Stainless Steel Semi-finished", "Iron & Steel", True),
    _cn("7219", "Stainless Flat Products", "Iron & Steel", True),
    _cn("7220", "Stainless Flat < 600mm", "Iron & Steel", True),
    _cn("7221 00", "Stainless Bars (hot-rolled)", "Iron & Steel", True),
    _cn("7222", "Stainless Other Bars/Angles", "Iron & Steel", True),
    _cn("7223 00", "Stainless Wire", "Iron & Steel", True),
    _cn("7224", "Other Alloy Steel Semi-fin.", "Iron & Steel", True),
    _cn("7225", "Other Alloy Flat Products", "Iron & Steel", True),
    _cn("7226", "Other Alloy Flat < 600mm", "Iron & Steel", True),
    _cn("7228", "Other Alloy Bars/Rods/Wire", "Iron & Steel", True),
    _cn("7229", "Other Alloy Steel Wire", "Iron & Steel", True),
    _cn("7301", "Sheet Piling", "Iron & Steel", True),
    _cn("7302", "Railway Material", "Iron & Steel", True),
    _cn("7303 00", "Cast Iron Tubes", "Iron & Steel", True),
    _cn("7304", "Seamless Tubes/Pipes", "Iron & Steel", True),
    _cn("7305", "Other Tubes > 406mm", "Iron & Steel", True),
    _cn("7306", "Other Tubes/Pipes", "Iron & Steel", True),
    _cn("7307", "Tube Fittings", "Iron & Steel", True),
    _cn("7308", "Structures & Parts", "Iron & Steel", True),
    _cn("7309 00", "Reservoirs/Tanks > 300L", "Iron & Steel", True),
    _cn("7310", "Tanks/Drums < 300L", "Iron & Steel", True),
    _cn("7311 00", "Containers for Compressed Gas", "Iron & Steel", True),
    _cn("7318", "Screws, Bolts, Nuts", "Iron & Steel", True),
    _cn("7326", "Other Articles of Iron/Steel", "Iron & Steel", True),
    _cn("7601 10 00", "Unwrought Aluminium (primary)", "Aluminium", False),
    _cn("7601 20 00", "Unwrought Al Alloys", "Aluminium", True),
    _cn("7603", "Aluminium Powders/Flakes", "Aluminium", True),
    _cn("7604", "Aluminium Bars/Profiles", "Aluminium", True),
    _cn("7605", "Aluminium Wire", "Aluminium", True),
    _cn("7606", "Aluminium Plates/Sheets", "Aluminium", True),
    _cn("7607", "Aluminium Foil", "Aluminium", True),
    _cn("7608", "Aluminium Tubes/Pipes", "Aluminium", True),
    _cn("7609 00 00", "Aluminium Tube Fittings", "Aluminium", True),
    _cn("7616", "Other Articles of Aluminium", "Aluminium", True),
    _cn("2808 00 00", "Nitric Acid", "Fertilisers", False),
    _cn("2814", "Ammonia", "Fertilisers", False),
    _cn("2834 21 00", "Potassium Nitrate", "Fertilisers", True),
    _cn("3102", "Mineral Nitrogen Fertilisers", "Fertilisers", True),
    _cn("3105", "Mixed Fertilisers", "Fertilisers", True),
    _cn("2804 10 00", "Hydrogen", "Hydrogen", False),
    _cn("2716 00 00", "Electrical Energy", "Electricity", False),
)

# tCO2/MWh, IEA 2023 / national statistics
GRID_FACTORS: Tuple[GridFactor, ...] = (
    GridFactor("KZ", "Kazakhstan", 0.636),
    GridFactor("CN", "China", 0.581),
    GridFactor("IN", "India", 0.708),
    GridFactor("TR", "Turkey", 0.440),
    GridFactor("RU", "Russia", 0.340),
    GridFactor("UA", "Ukraine", 0.345),
    GridFactor("EG", "Egypt", 0.450),
    GridFactor("ZA", "South Africa", 0.928),
    GridFactor("BR", "Brazil", 0.074),
    GridFactor("US", "United States", 0.379),
    GridFactor("GB", "United Kingdom", 0.207),
    GridFactor("DE", "Germany", 0.338),
    GridFactor("FR", "France", 0.052),
    GridFactor("PL", "Poland", 0.681),
    GridFactor("NL", "Netherlands", 0.328),
    GridFactor("IT", "Italy", 0.257),
    GridFactor("ES", "Spain", 0.149),
    GridFactor("JP", "Japan", 0.457),
    GridFactor("KR", "South Korea", 0.415),
    GridFactor("AU", "Australia", 0.656),
)


# ----------------------------
# Container
# ----------------------------
@dataclass(frozen=True)
class ReferenceTables:
    fuel_defaults: Mapping[str, FuelDefault] = field(default_factory=lambda: FUEL_DEFAULTS)
    gwp_set: GwpSet = GWP_EU_CBAM_2025
    phase_in: Tuple[PhaseInRow, ...] = PHASE_IN
    cert_price: Tuple[ScenarioPriceRow, ...] = CERT_PRICE
    credit_price: Tuple[CreditPriceRow, ...] = CREDIT_PRICE
    commodity_price: Tuple[ScenarioPriceRow, ...] = COMMODITY_PRICE
    markup_schedules: Mapping[str, Tuple[MarkupRow, ...]] = field(default_factory=lambda: MARKUP_SCHEDULES)
    default_intensities: Tuple[DefaultIntensity, ...] = DEFAULT_INTENSITIES
    scope_rules: Mapping[str, str] = field(default_factory=lambda: SCOPE_RULES)
    cn_codes: Tuple[CnCode, ...] = CN_CODES
    grid_factors: Tuple[GridFactor, ...] = GRID_FACTORS

    def replace(self, **changes: Any) -> "ReferenceTables":
        return dataclasses.replace(self, **changes)

    # --- fuels / gases ---
    def fuel_default(self, fuel_type_id: str) -> FuelDefault:
        ft = _norm(fuel_type_id)
        return self.fuel_defaults.get(ft) or self.fuel_defaults["custom"]

    def gwp(self, gas: str) -> float:
        return self.gwp_set.factor(gas)

    def grid_ef(self, country_code: str) -> float:
        code = str(country_code or "").strip().upper()
        for g in self.grid_factors:
            if g.code == code:
                return float(g.ef)
        return 0.0

    # --- phase-in / prices ---
    def payable_share(self, year: int) -> float:
        y = int(year)
        for r in self.phase_in:
            if r.year == y:
                return float(r.payable_share)
        if self.phase_in and y < min(r.year for r in self.phase_in):
            return 0.0  # transitional period: reporting only
        return 1.0

    def cert_price_for(self, year: int, scenario: str) -> float:
        return _scenario_price(self.cert_price, year, scenario, table="cert_price")

    def commodity_price_for(self, year: int, scenario: str) -> float:
        return _scenario_price(self.commodity_price, year, scenario, table="commodity_price")

    def credit_for(self, year: int, scenario: str) -> Tuple[float, float]:
        """(price, quota_share) for the deduction credit; (0, 0) if the year is missing."""
        row = _row_for_year(self.credit_price, year)
        if row is None:
            return 0.0, 0.0
        price = row.price(scenario)
        return float(price or 0.0), float(row.quota_share)

    # --- default values ---
    def markup_schedule(self, sector: str) -> Tuple[MarkupRow, ...]:
        key = "fertilisers" if _norm(sector) in ("fertilisers", "fertilizers") else "standard"
        return self.markup_schedules[key]

    def markup(self, year: int, sector: str) -> float:
        schedule = self.markup_schedule(sector)
        row = _row_for_year(schedule, year)
        if row is not None:
            return float(row.rate)
        # outside the schedule: hold at the schedule cap
        return max((float(r.rate) for r in schedule), default=STANDARD_MARKUP_CAP)

    def default_entry(self, cn_code: str) -> Optional[DefaultIntensity]:
        cn = _clean_cn(cn_code)
        if not cn:
            return None
        for d in self.default_intensities:
            if _clean_cn(d.cn_code) == cn:
                return d
        return None

    def defaults_by_sector(self, sector: str) -> List[DefaultIntensity]:
        return [d for d in self.default_intensities if d.sector == sector]

    def default_scope(self, sector: str) -> str:
        return self.scope_rules.get(sector, "TOTAL")

    def cn_info(self, cn_code: str) -> Optional[CnCode]:
        """Exact CN match first, then the longest registry prefix."""
        cn = _clean_cn(cn_code)
        if not cn:
            return None
        best: Optional[CnCode] = None
        for c in self.cn_codes:
            pat = _clean_cn(c.code)
            if pat == cn:
                return c
            if cn.startswith(pat) and (best is None or len(pat) > len(_clean_cn(best.code))):
                best = c
        return best

    def is_complex(self, cn_code: str) -> bool:
        info = self.cn_info(cn_code)
        return bool(info.is_complex) if info else False


def _row_for_year(rows, year: int):
    y = int(year)
    for r in rows:
        if r.year == y:
            return r
    return None


def _scenario_price(rows: Tuple[ScenarioPriceRow, ...], year: int, scenario: str, *, table: str) -> float:
    row = _row_for_year(rows, year)
    if row is None:
        logger.warning("No %s row for year %s; using 0", table, year)
        return 0.0
    price = row.price(scenario)
    if price is None:
        logger.debug("Scenario %r not in %s; falling back to MID", scenario, table)
        return float(row.mid)
    return price


@lru_cache(maxsize=1)
def default_reference_tables() -> ReferenceTables:
    return ReferenceTables()


# ----------------------------
# Invariants
# ----------------------------
def check_reference_tables(tables: ReferenceTables) -> List[str]:
    """Returns human-readable invariant violations (empty list = consistent)."""
    issues: List[str] = []

    shares = [(r.year, r.payable_share) for r in sorted(tables.phase_in, key=lambda r: r.year)]
    for (y0, s0), (y1, s1) in zip(shares, shares[1:]):
        if s1 < s0:
            issues.append(f"payable share decreases {y0}->{y1} ({s0} -> {s1})")
    share_by_year = dict(shares)
    if share_by_year.get(2026) != 0.025:
        issues.append("payable share for 2026 must be 0.025")
    if share_by_year.get(2034) != 1.0:
        issues.append("payable share for 2034 must be 1.0")

    for key, schedule in tables.markup_schedules.items():
        cap = FERTILISER_MARKUP_CAP if key == "fertilisers" else STANDARD_MARKUP_CAP
        rates = [r.rate for r in sorted(schedule, key=lambda r: r.year)]
        if any(b < a for a, b in zip(rates, rates[1:])):
            issues.append(f"markup schedule '{key}' is not non-decreasing")
        if any(r > cap for r in rates):
            issues.append(f"markup schedule '{key}' exceeds cap {cap}")

    if tables.gwp_set.factor("CO2", default=0.0) != 1.0:
        issues.append("GWP multiplier for CO2 must be 1")

    return issues


# ----------------------------
# DataFrame loader
# ----------------------------
def default_intensities_from_frame(df: Optional[pd.DataFrame]) -> Tuple[DefaultIntensity, ...]:
    """Build a default-intensity table from a DataFrame (e.g. a parsed regulation annex).

    Flexible columns:
      - cn_code (or cn / code)
      - name, sector, route (optional)
      - direct (or direct_intensity / direct_intensity_tco2_per_unit)
      - indirect (or indirect_intensity / indirect_intensity_tco2_per_unit), blank = N/A
      - total (optional, defaults to direct + indirect)
    Rows without a CN code are skipped.
    """
    if df is None or len(df) == 0:
        return ()

    d = df.copy()
    d.columns = [_norm(c) for c in d.columns]
    cols = set(d.columns)

    def pick(*names: str) -> str:
        for n in names:
            if n in cols:
                return n
        return ""

    cn_c = pick("cn_code", "cn", "code")
    direct_c = pick("direct", "direct_intensity", "direct_intensity_tco2_per_unit")
    indirect_c = pick("indirect", "indirect_intensity", "indirect_intensity_tco2_per_unit")
    total_c = pick("total", "total_intensity")
    if not cn_c or not direct_c:
        return ()

    out: List[DefaultIntensity] = []
    for _, r in d.iterrows():
        cn = _text(r.get(cn_c))
        if not cn:
            continue
        direct = _to_float(r.get(direct_c))
        indirect = _opt_float(r.get(indirect_c)) if indirect_c else None
        total = _opt_float(r.get(total_c)) if total_c else None
        if total is None:
            total = direct + (indirect or 0.0)
        out.append(
            DefaultIntensity(
                cn_code=cn,
                name=_text(r.get("name")) if "name" in cols else "",
                sector=_text(r.get("sector")) if "sector" in cols else "",
                direct=direct,
                indirect=indirect,
                total=total,
                route=(_text(r.get("route")) or None) if "route" in cols else None,
            )
        )
    return tuple(out)

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator

from carbon_ledger.config import get_settings
from carbon_ledger.data.reference import PROJECTION_YEARS, ReferenceTables, _to_float, default_reference_tables
from carbon_ledger.mrv.lineage import sha256_json

logger = logging.getLogger(__name__)

BASES = ("ACTUAL", "DEFAULT")
SCOPES = ("DIRECT_ONLY", "TOTAL")
CREDIT_SCENARIOS = ("NONE", "LOW", "MID", "HIGH")

# camelCase keys accepted from UI / stored configs
_ALIASES = {
    "certPriceScenario": "cert_price_scenario",
    "alPriceScenario": "commodity_price_scenario",
    "commodityPriceScenario": "commodity_price_scenario",
    "carbonCreditEligible": "credit_eligible",
    "creditEligible": "credit_eligible",
    "carbonCreditScenario": "credit_scenario",
    "creditScenario": "credit_scenario",
    "importedQty": "imported_qty",
    "cnCode": "cn_code",
    "goodCategory": "sector",
    "seeDirect": "see_direct",
    "seeIndirect": "see_indirect",
}

ROW_KEYS = (
    "year",
    "imported_qty",
    "markup",
    "intensity",
    "embedded_emissions",
    "payable_share",
    "payable_emissions",
    "cert_price",
    "gross_cost",
    "credit_price",
    "quota_share",
    "deduction",
    "net_cost",
    "cost_per_tonne",
    "commodity_price",
    "cost_pct_of_price",
)
TOTAL_KEYS = ("embedded_emissions", "payable_emissions", "gross_cost", "deduction", "net_cost")


def normalize_config_keys(raw: Mapping[str, Any]) -> Dict[str, Any]:
    return {_ALIASES.get(k, k): v for k, v in dict(raw or {}).items()}


def _upper(v: Any) -> str:
    return str(v or "").strip().upper().replace(" ", "_")


class ProjectionConfig(BaseModel):
    """One projection scenario. Bad numbers become 0, enums are normalised."""

    basis: str = "ACTUAL"
    scope: Optional[str] = None  # None -> sector scope rule
    cert_price_scenario: str = Field(default_factory=lambda: get_settings().DEFAULT_CERT_PRICE_SCENARIO)
    commodity_price_scenario: str = Field(default_factory=lambda: get_settings().DEFAULT_COMMODITY_PRICE_SCENARIO)
    credit_eligible: bool = Field(default_factory=lambda: get_settings().DEFAULT_CREDIT_ELIGIBLE)
    credit_scenario: str = Field(default_factory=lambda: get_settings().DEFAULT_CREDIT_SCENARIO)
    imported_qty: float = 0.0
    cn_code: str = ""
    sector: str = Field(default_factory=lambda: get_settings().DEFAULT_SECTOR)
    see_direct: float = 0.0
    see_indirect: float = 0.0

    @model_validator(mode="before")
    @classmethod
    def _rename_aliases(cls, data: Any) -> Any:
        if isinstance(data, Mapping):
            # explicit None means "use the default"
            return {k: v for k, v in normalize_config_keys(data).items() if v is not None or k == "scope"}
        return data

    @field_validator("basis", mode="before")
    @classmethod
    def _basis(cls, v: Any) -> str:
        return "DEFAULT" if _upper(v) == "DEFAULT" else "ACTUAL"

    @field_validator("scope", mode="before")
    @classmethod
    def _scope(cls, v: Any) -> Optional[str]:
        s = _upper(v)
        return s if s in SCOPES else None

    @field_validator("cert_price_scenario", "commodity_price_scenario", mode="before")
    @classmethod
    def _price_scenario(cls, v: Any) -> str:
        return _upper(v) or "MID"

    @field_validator("credit_scenario", mode="before")
    @classmethod
    def _credit_scenario(cls, v: Any) -> str:
        return _upper(v) or "NONE"

    @field_validator("credit_eligible", mode="before")
    @classmethod
    def _flag(cls, v: Any) -> bool:
        if isinstance(v, str):
            return v.strip().lower() in ("1", "true", "yes", "y", "on", "evet")
        return bool(v)

    @field_validator("imported_qty", "see_direct", "see_indirect", mode="before")
    @classmethod
    def _non_negative(cls, v: Any) -> float:
        f = _to_float(v)
        return f if f > 0 else 0.0

    @field_validator("cn_code", "sector", mode="before")
    @classmethod
    def _text(cls, v: Any) -> str:
        return str(v or "").strip()


def _as_config(config: Union[ProjectionConfig, Mapping[str, Any], None]) -> ProjectionConfig:
    if isinstance(config, ProjectionConfig):
        return config
    return ProjectionConfig.model_validate(dict(config or {}))


def calculate_cbam_projection(
    config: Union[ProjectionConfig, Mapping[str, Any], None],
    tables: Optional[ReferenceTables] = None,
) -> Dict[str, Any]:
    """CBAM maliyet projeksiyonu, 2026-2034.

    Per year:
      intensity  = ACTUAL: SEE (direct or direct+indirect by scope)
                   DEFAULT: default value x (1 + markup), 0 without a default entry
      embedded   = qty x intensity
      payable    = embedded x payable_share
      gross      = payable x cert_price
      deduction  = min(cert_price, credit_price) x embedded x quota_share
      net        = max(0, gross - deduction)

    Rows are unrounded; see rounded_rows() for display values.
    """
    t = tables or default_reference_tables()
    cfg = _as_config(config)

    sector = cfg.sector or get_settings().DEFAULT_SECTOR
    scope = cfg.scope or t.default_scope(sector)
    entry = t.default_entry(cfg.cn_code)
    qty = cfg.imported_qty

    warnings: List[str] = []
    if cfg.basis == "DEFAULT" and entry is None:
        msg = f"No default intensity for CN code '{cfg.cn_code}'; intensity set to 0"
        logger.warning(msg)
        warnings.append(msg)

    cert_years = {r.year for r in t.cert_price}
    commodity_years = {r.year for r in t.commodity_price}
    credit_on = cfg.credit_eligible and cfg.credit_scenario != "NONE"

    rows: List[Dict[str, Any]] = []
    for year in PROJECTION_YEARS:
        markup = t.markup(year, sector)

        if cfg.basis == "ACTUAL":
            intensity = cfg.see_direct if scope == "DIRECT_ONLY" else cfg.see_direct + cfg.see_indirect
        elif entry is not None:
            intensity = entry.intensity(scope) * (1.0 + markup)
        else:
            intensity = 0.0

        embedded = qty * intensity
        payable_share = t.payable_share(year)
        payable = embedded * payable_share

        if year not in cert_years:
            warnings.append(f"No certificate price for {year}; using 0")
        cert_price = t.cert_price_for(year, cfg.cert_price_scenario)
        gross = payable * cert_price

        credit_price, quota_share, deduction = 0.0, 0.0, 0.0
        if credit_on:
            credit_price, quota_share = t.credit_for(year, cfg.credit_scenario)
            # against embedded, not payable, emissions
            deduction = min(cert_price, credit_price) * embedded * quota_share

        net = max(0.0, gross - deduction)
        cost_per_tonne = net / qty if qty > 0 else 0.0

        if year not in commodity_years:
            warnings.append(f"No reference commodity price for {year}; using 0")
        commodity_price = t.commodity_price_for(year, cfg.commodity_price_scenario)
        cost_pct = cost_per_tonne / commodity_price * 100.0 if commodity_price > 0 else 0.0

        rows.append(
            {
                "year": year,
                "imported_qty": qty,
                "markup": markup,
                "intensity": intensity,
                "embedded_emissions": embedded,
                "payable_share": payable_share,
                "payable_emissions": payable,
                "cert_price": cert_price,
                "gross_cost": gross,
                "credit_price": credit_price,
                "quota_share": quota_share,
                "deduction": deduction,
                "net_cost": net,
                "cost_per_tonne": cost_per_tonne,
                "commodity_price": commodity_price,
                "cost_pct_of_price": cost_pct,
            }
        )

    totals = {k: float(sum(r[k] for r in rows)) for k in TOTAL_KEYS}
    digits = get_settings().HASH_DIGITS
    metadata = {
        "default_entry": entry.to_dict() if entry else None,
        "effective_scope": scope,
        "sector": sector,
        "basis": cfg.basis,
        "config": cfg.model_dump(),
        "warnings": warnings,
        "input_hash": sha256_json(cfg.model_dump(), digits=digits),
        "result_hash": sha256_json({"rows": rows, "totals": totals}, digits=digits),
    }
    return {"rows": rows, "totals": totals, "metadata": metadata}


def _round_half_up(x: float, digits: int = 0) -> float:
    q = Decimal(1).scaleb(-digits)
    return float(Decimal(str(x)).quantize(q, rounding=ROUND_HALF_UP))


# display precision per column (tonnes and EUR whole, ratios to the cent)
_DISPLAY_DIGITS = {
    "intensity": 3,
    "embedded_emissions": 0,
    "payable_emissions": 0,
    "gross_cost": 0,
    "deduction": 0,
    "net_cost": 0,
    "cost_per_tonne": 2,
    "cost_pct_of_price": 2,
}


def rounded_rows(rows: List[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    out: List[Dict[str, Any]] = []
    for r in rows or []:
        d = dict(r)
        for k, nd in _DISPLAY_DIGITS.items():
            if k in d and d[k] is not None:
                d[k] = _round_half_up(float(d[k]), nd)
        out.append(d)
    return out


def projection_from_pcf(
    pcf_row: Mapping[str, Any],
    tables: Optional[ReferenceTables] = None,
    **config: Any,
) -> Dict[str, Any]:
    """ACTUAL-basis projection from one calculate_pcf() row."""
    merged = {
        "cn_code": pcf_row.get("cn_code") or "",
        **normalize_config_keys(config),
        "basis": "ACTUAL",
        "see_direct": pcf_row.get("see_direct"),
        "see_indirect": pcf_row.get("see_indirect"),
    }
    return calculate_cbam_projection(merged, tables)

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

import pandas as pd

from carbon_ledger.data.reference import ReferenceTables
from carbon_ledger.engine.cbam import ProjectionConfig, calculate_cbam_projection, normalize_config_keys

ConfigLike = Union[ProjectionConfig, Mapping[str, Any]]

CERT_PRICE_SCENARIOS = (
    {"name": "low", "label": "Low Carbon Price", "color": "#22c55e", "overrides": {"cert_price_scenario": "LOW"}},
    {"name": "mid", "label": "Mid Carbon Price", "color": "#f59e0b", "overrides": {"cert_price_scenario": "MID"}},
    {"name": "high", "label": "High Carbon Price", "color": "#ef4444", "overrides": {"cert_price_scenario": "HIGH"}},
)

CREDIT_SCENARIOS = (
    {"name": "none", "label": "No Carbon Credit", "color": "#64748b", "overrides": {"credit_scenario": "NONE"}},
    {"name": "low", "label": "Low Credit Price", "color": "#0ea5e9", "overrides": {"credit_scenario": "LOW"}},
    {"name": "mid", "label": "Mid Credit Price", "color": "#6366f1", "overrides": {"credit_scenario": "MID"}},
    {"name": "high", "label": "High Credit Price", "color": "#a855f7", "overrides": {"credit_scenario": "HIGH"}},
)


def _base_dict(base_config: Optional[ConfigLike]) -> Dict[str, Any]:
    if isinstance(base_config, ProjectionConfig):
        return base_config.model_dump()
    return normalize_config_keys(base_config or {})


def compare_scenarios(
    base_config: Optional[ConfigLike],
    scenarios: Iterable[Mapping[str, Any]],
    tables: Optional[ReferenceTables] = None,
) -> List[Dict[str, Any]]:
    """Senaryo karşılaştırması.

    Each scenario's overrides are shallow-merged onto a fresh copy of the base
    config and projected independently.
    """
    base = _base_dict(base_config)
    out: List[Dict[str, Any]] = []
    for sc in scenarios or []:
        config = {**base, **normalize_config_keys(sc.get("overrides") or {})}
        out.append(
            {
                "name": sc.get("name"),
                "label": sc.get("label"),
                "color": sc.get("color"),
                "projection": calculate_cbam_projection(config, tables),
            }
        )
    return out


def compare_cert_price_scenarios(
    base_config: Optional[ConfigLike],
    tables: Optional[ReferenceTables] = None,
) -> List[Dict[str, Any]]:
    return compare_scenarios(base_config, CERT_PRICE_SCENARIOS, tables)


def compare_credit_scenarios(
    base_config: Optional[ConfigLike],
    tables: Optional[ReferenceTables] = None,
) -> List[Dict[str, Any]]:
    # eligibility forced on so NONE vs LOW/MID/HIGH is the only difference
    base = {**_base_dict(base_config), "credit_eligible": True}
    return compare_scenarios(base, CREDIT_SCENARIOS, tables)


def comparison_frame(results: Iterable[Mapping[str, Any]]) -> pd.DataFrame:
    """Long-form (year x scenario) frame for charts."""
    records: List[Dict[str, Any]] = []
    for res in results or []:
        for r in (res.get("projection") or {}).get("rows") or []:
            records.append(
                {
                    "year": int(r["year"]),
                    "scenario": res.get("name"),
                    "label": res.get("label"),
                    "gross_cost": float(r["gross_cost"]),
                    "deduction": float(r["deduction"]),
                    "net_cost": float(r["net_cost"]),
                    "cost_per_tonne": float(r["cost_per_tonne"]),
                }
            )
    cols = ["year", "scenario", "label", "gross_cost", "deduction", "net_cost", "cost_per_tonne"]
    if not records:
        return pd.DataFrame(columns=cols)
    return pd.DataFrame(records, columns=cols).sort_values(["year", "scenario"]).reset_index(drop=True)

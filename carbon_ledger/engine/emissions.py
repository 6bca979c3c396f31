from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

import pandas as pd

from carbon_ledger.config import get_settings
from carbon_ledger.data.reference import (
    FuelDefault,
    GwpSet,
    ReferenceTables,
    _non_negative,
    _opt_float,
    _to_float,
    default_reference_tables,
)
from carbon_ledger.engine.formula import evaluate
from carbon_ledger.engine.models import ActivityData, ElectricityEntry, EmissionBlock, FuelEntry, ProcessEvent
from carbon_ledger.mrv.lineage import sha256_json

logger = logging.getLogger(__name__)

CO2_PER_C = 44.0 / 12.0

# Legacy aluminium process parameters (canonical names, see services.ingestion)
ANODE_PARAMS = (
    "metal_production",
    "net_anode_consumption",
    "anode_carbon_fraction",
    "anode_sulfur_fraction",
    "anode_ash_fraction",
)
PFC_PARAMS = ("metal_production", "aem_minutes", "cf4_slope_factor", "c2f6_cf4_ratio")


def _resolve(tables: Optional[ReferenceTables], gwp: Optional[GwpSet]) -> Tuple[ReferenceTables, GwpSet]:
    t = tables or default_reference_tables()
    return t, gwp or t.gwp_set


def _check_gwp(g: GwpSet) -> None:
    configured = get_settings().GWP_SET
    if configured and g.id != configured:
        logger.warning("GWP set %s in use, settings expect %s", g.id, configured)


def _param(params: Mapping[str, Any], key: str) -> float:
    return _to_float(params.get(key))


# ----------------------------
# Per-entry calculations
# ----------------------------
def calc_combustion(
    entry: FuelEntry,
    factor_defaults: Optional[FuelDefault] = None,
    gwp: Optional[GwpSet] = None,
    *,
    tables: Optional[ReferenceTables] = None,
) -> Dict[str, Any]:
    """Yakma emisyonu (IPCC TJ normalizasyonu).

    energy_gj = quantity x NCV
    energy_tj = energy_gj / 1000
    mass_X    = energy_tj x EF_X(kg/TJ) / 1000
    co2e      = sum(mass_X x GWP(X))
    """
    t, g = _resolve(tables, gwp)
    fuel = factor_defaults or t.fuel_default(entry.fuel_type_id)

    def pick(override: Optional[float], default: float) -> Tuple[float, bool]:
        # NaN override = not supplied; factors never go below 0
        value = _opt_float(override)
        if value is not None:
            return max(value, 0.0), True
        return _non_negative(default), False

    ncv, ncv_over = pick(entry.ncv, fuel.ncv)
    ef_co2, co2_over = pick(entry.ef_co2, fuel.ef_co2)
    ef_ch4, ch4_over = pick(entry.ef_ch4, fuel.ef_ch4)
    ef_n2o, n2o_over = pick(entry.ef_n2o, fuel.ef_n2o)

    quantity = _non_negative(entry.quantity)

    energy_gj = quantity * ncv
    energy_tj = energy_gj / 1000.0

    co2 = energy_tj * ef_co2 / 1000.0
    ch4 = energy_tj * ef_ch4 / 1000.0
    n2o = energy_tj * ef_n2o / 1000.0

    co2e = co2 * g.factor("CO2") + ch4 * g.factor("CH4") + n2o * g.factor("N2O")

    def src(overridden: bool) -> str:
        return "user_override" if overridden else fuel.source

    lineage = {
        "type": "combustion",
        "fuel_type": fuel.name or entry.fuel_type_id,
        "inputs": {
            "quantity": {"value": quantity, "unit": entry.unit or "t"},
            "ncv": {"value": ncv, "unit": fuel.ncv_unit, "source": src(ncv_over)},
        },
        "conversion": {
            "energy_gj": {"value": energy_gj, "formula": "quantity * NCV"},
            "energy_tj": {"value": energy_tj, "formula": "energy_gj / 1000"},
        },
        "factors": {
            "ef_co2": {"value": ef_co2, "unit": "kg/TJ", "source": src(co2_over)},
            "ef_ch4": {"value": ef_ch4, "unit": "kg/TJ", "source": src(ch4_over)},
            "ef_n2o": {"value": ef_n2o, "unit": "kg/TJ", "source": src(n2o_over)},
        },
        "gwp": {
            "set": g.name or g.id,
            "CO2": g.factor("CO2"),
            "CH4": g.factor("CH4"),
            "N2O": g.factor("N2O"),
        },
        "outputs": {
            "co2": {"value": co2, "unit": "t CO2"},
            "ch4": {"value": ch4, "unit": "t CH4"},
            "n2o": {"value": n2o, "unit": "t N2O"},
            "co2e": {"value": co2e, "unit": "t CO2e"},
        },
    }

    return {
        "energy_gj": energy_gj,
        "energy_tj": energy_tj,
        "co2": co2,
        "ch4": ch4,
        "n2o": n2o,
        "co2e": co2e,
        "lineage": lineage,
    }


def calc_electricity(entry: ElectricityEntry) -> Dict[str, Any]:
    mwh = _non_negative(entry.mwh)
    ef = _non_negative(entry.ef)
    co2e = mwh * ef  # EF is already tCO2e/MWh

    source = "user_override" if entry.ef_override else f"grid_default_{entry.grid_country}"
    lineage = {
        "type": "electricity",
        "inputs": {
            "mwh": {"value": mwh, "unit": "MWh"},
            "ef": {"value": ef, "unit": "tCO2e/MWh", "source": source},
        },
        "outputs": {"co2e": {"value": co2e, "unit": "t CO2e", "formula": "MWh * EF"}},
    }
    return {"mwh": mwh, "co2e": co2e, "lineage": lineage}


def calc_anode(params: Mapping[str, Any]) -> Dict[str, Any]:
    """Anode consumption CO2 (aluminium, legacy):
    production x rate(kg/t)/1000 x (C - S - ash) x 44/12
    """
    production = _param(params, "metal_production")
    rate = _param(params, "net_anode_consumption")
    c = _param(params, "anode_carbon_fraction")
    s = _param(params, "anode_sulfur_fraction")
    ash = _param(params, "anode_ash_fraction")

    anode_t = production * rate / 1000.0
    effective_carbon = c - s - ash
    co2 = anode_t * effective_carbon * CO2_PER_C

    lineage = {
        "type": "anode_consumption",
        "inputs": {
            "metal_production": {"value": production, "unit": "t"},
            "net_anode_consumption": {"value": rate, "unit": "kg/t Al"},
            "carbon_fraction": {"value": c, "unit": "fraction"},
            "sulfur_fraction": {"value": s, "unit": "fraction"},
            "ash_fraction": {"value": ash, "unit": "fraction"},
        },
        "conversion": {
            "anode_consumption_t": {"value": anode_t, "formula": "production * rate / 1000"},
            "effective_carbon": {"value": effective_carbon, "formula": "C - S - ash"},
        },
        "outputs": {"co2": {"value": co2, "unit": "t CO2", "formula": "anode_t * effective_carbon * 44/12"}},
    }
    return {"co2": co2, "lineage": lineage}


def calc_pfc(params: Mapping[str, Any], gwp: Optional[GwpSet] = None) -> Dict[str, Any]:
    """Anode-effect PFC: CF4 = production x AEM x slope; C2F6 = CF4 x ratio."""
    g = gwp or default_reference_tables().gwp_set
    production = _param(params, "metal_production")
    aem = _param(params, "aem_minutes")
    slope = _param(params, "cf4_slope_factor")
    ratio = _param(params, "c2f6_cf4_ratio")

    cf4 = production * aem * slope
    c2f6 = cf4 * ratio
    co2e = cf4 * g.factor("CF4") + c2f6 * g.factor("C2F6")

    lineage = {
        "type": "pfc",
        "inputs": {
            "metal_production": {"value": production, "unit": "t"},
            "aem_minutes": {"value": aem, "unit": "min/cell-day"},
            "cf4_slope_factor": {"value": slope, "unit": "t CF4 / (t Al x AEM)"},
            "c2f6_cf4_ratio": {"value": ratio, "unit": "ratio"},
        },
        "gwp": {"set": g.name or g.id, "CF4": g.factor("CF4"), "C2F6": g.factor("C2F6")},
        "outputs": {
            "cf4": {"value": cf4, "unit": "t CF4"},
            "c2f6": {"value": c2f6, "unit": "t C2F6"},
            "co2e": {"value": co2e, "unit": "t CO2e", "formula": "CF4*GWP_CF4 + C2F6*GWP_C2F6"},
        },
    }
    return {"cf4": cf4, "c2f6": c2f6, "co2e": co2e, "lineage": lineage}


def calc_emission_block(block: EmissionBlock, gwp: Optional[GwpSet] = None) -> Dict[str, Any]:
    """Formula-based process source. A formula error zeroes this block only."""
    g = gwp or default_reference_tables().gwp_set
    gas = str(block.output_gas or "CO2").upper()

    if not block.formula or not str(block.formula).strip():
        return {"tonnes": 0.0, "co2e": 0.0, "gas": gas, "error": None, "lineage": {}}

    variables = block.variables()
    res = evaluate(block.formula, variables)
    if res["error"]:
        logger.warning("Emission block %s: %s", block.block_id, res["error"])
        return {
            "tonnes": 0.0,
            "co2e": 0.0,
            "gas": gas,
            "error": res["error"],
            "lineage": {"formula": block.formula, "variables": variables, "error": res["error"]},
        }

    # unknown gas (or a zero multiplier) counts as CO2
    gwp_factor = g.factor(gas) or 1.0
    tonnes = float(res["value"] or 0.0)
    co2e = tonnes * gwp_factor

    return {
        "tonnes": tonnes,
        "co2e": co2e,
        "gas": gas,
        "error": None,
        "lineage": {
            "formula": block.formula,
            "variables": variables,
            "raw_result": res["value"],
            "gas": gas,
            "gwp_factor": gwp_factor,
            "co2e": co2e,
            "source": block.source or "User-defined",
        },
    }


# ----------------------------
# Aggregation
# ----------------------------
def group_process_events(events: Iterable[ProcessEvent]) -> "OrderedDict[Tuple[str, str], Dict[str, float]]":
    """(period, process_id) -> {parameter: value}; later rows overwrite earlier ones."""
    grouped: "OrderedDict[Tuple[str, str], Dict[str, float]]" = OrderedDict()
    for evt in events:
        grouped.setdefault((evt.period, evt.process_id), {})[evt.parameter] = evt.value
    return grouped


def calculate_total_emissions(
    activity: Union[ActivityData, Mapping[str, Any]],
    *,
    tables: Optional[ReferenceTables] = None,
    gwp: Optional[GwpSet] = None,
) -> Dict[str, Any]:
    """Installation-wide emissions for one aggregation scope.

    If any emission block exists, blocks replace the legacy anode + PFC
    computation for the process-direct subtotal (all-or-nothing switch).
    Legacy entries are still computed and returned.
    """
    if not isinstance(activity, ActivityData):
        from carbon_ledger.services.ingestion import normalize_activity

        activity = normalize_activity(activity)

    t, g = _resolve(tables, gwp)
    _check_gwp(g)

    # --- combustion (direct) ---
    combustion_entries: List[Dict[str, Any]] = []
    for e in activity.fuels:
        combustion_entries.append(
            {"entry_id": e.entry_id, "process_id": e.process_id, "period": e.period, **calc_combustion(e, gwp=g, tables=t)}
        )
    combustion_totals = {
        k: float(sum(r[k] for r in combustion_entries))
        for k in ("energy_gj", "energy_tj", "co2", "ch4", "n2o", "co2e")
    }

    # --- electricity (indirect) ---
    electricity_entries = [
        {"entry_id": e.entry_id, "process_id": e.process_id, "period": e.period, **calc_electricity(e)}
        for e in activity.electricity
    ]
    electricity_totals = {
        "mwh": float(sum(r["mwh"] for r in electricity_entries)),
        "co2e": float(sum(r["co2e"] for r in electricity_entries)),
    }

    # --- legacy process events ---
    anode_entries: List[Dict[str, Any]] = []
    pfc_entries: List[Dict[str, Any]] = []
    for (period, process_id), params in group_process_events(activity.process_events).items():
        if _param(params, "net_anode_consumption") > 0:
            anode_entries.append({"period": period, "process_id": process_id, **calc_anode(params)})
        if _param(params, "aem_minutes") > 0:
            pfc_entries.append({"period": period, "process_id": process_id, **calc_pfc(params, g)})
    legacy_anode = float(sum(r["co2"] for r in anode_entries))
    legacy_pfc = float(sum(r["co2e"] for r in pfc_entries))

    # --- emission blocks ---
    block_entries: List[Dict[str, Any]] = []
    for b in activity.emission_blocks:
        r = calc_emission_block(b, g)
        block_entries.append(
            {
                "block_id": b.block_id,
                "name": b.name,
                "period": b.period,
                "process_id": b.process_id,
                "gas": r["gas"],
                "tonnes": r["tonnes"],
                "co2e": r["co2e"],
                "error": r["error"],
                "lineage": r["lineage"],
            }
        )
    blocks_co2e = float(sum(r["co2e"] for r in block_entries))
    error_count = sum(1 for r in block_entries if r["error"])

    use_blocks = len(activity.emission_blocks) > 0
    if use_blocks and (anode_entries or pfc_entries):
        logger.debug(
            "Emission blocks present; %d legacy anode/PFC entries excluded from the summary",
            len(anode_entries) + len(pfc_entries),
        )
    process_direct = blocks_co2e if use_blocks else legacy_anode + legacy_pfc

    direct = combustion_totals["co2e"] + process_direct
    indirect = electricity_totals["co2e"]

    result: Dict[str, Any] = {
        "combustion": {"entries": combustion_entries, "totals": combustion_totals},
        "electricity": {"entries": electricity_entries, "totals": electricity_totals},
        "anode": {"entries": anode_entries, "total_co2": 0.0 if use_blocks else legacy_anode},
        "pfc": {"entries": pfc_entries, "total_co2e": 0.0 if use_blocks else legacy_pfc},
        "emission_blocks": {"entries": block_entries, "total_co2e": blocks_co2e},
        "summary": {
            "direct_co2e": direct,
            "indirect_co2e": indirect,
            "total_co2e": direct + indirect,
            "combustion_co2e": combustion_totals["co2e"],
            "anode_co2": 0.0 if use_blocks else legacy_anode,
            "pfc_co2e": 0.0 if use_blocks else legacy_pfc,
            "blocks_co2e": blocks_co2e,
            "electricity_co2e": indirect,
        },
        "gwp_set": g.to_dict(),
    }
    result["meta"] = {
        "process_source": "blocks" if use_blocks else "legacy",
        "error_count": int(error_count),
        "result_hash": sha256_json(result, digits=get_settings().HASH_DIGITS),
    }
    return result


# ----------------------------
# Roll-ups
# ----------------------------
_SUMMARY_COLUMNS = ["combustion_co2e", "process_co2e", "electricity_co2e", "direct_co2e", "indirect_co2e", "total_co2e"]


def _entries_frame(result: Dict[str, Any]) -> pd.DataFrame:
    use_blocks = (result.get("meta") or {}).get("process_source") == "blocks"
    rows: List[Dict[str, Any]] = []

    def add(entries: List[Dict[str, Any]], column: str, value_key: str) -> None:
        for e in entries or []:
            rows.append(
                {
                    "period": str(e.get("period") or ""),
                    "process_id": str(e.get("process_id") or ""),
                    "column": column,
                    "value": float(e.get(value_key) or 0.0),
                }
            )

    add(result["combustion"]["entries"], "combustion_co2e", "co2e")
    add(result["electricity"]["entries"], "electricity_co2e", "co2e")
    if use_blocks:
        add(result["emission_blocks"]["entries"], "process_co2e", "co2e")
    else:
        add(result["anode"]["entries"], "process_co2e", "co2")
        add(result["pfc"]["entries"], "process_co2e", "co2e")
    return pd.DataFrame(rows, columns=["period", "process_id", "column", "value"])


def _rollup(result: Dict[str, Any], key: str) -> pd.DataFrame:
    df = _entries_frame(result)
    if df.empty:
        return pd.DataFrame(columns=[key] + _SUMMARY_COLUMNS)

    out = df.pivot_table(index=key, columns="column", values="value", aggfunc="sum", fill_value=0.0)
    for c in ("combustion_co2e", "process_co2e", "electricity_co2e"):
        if c not in out.columns:
            out[c] = 0.0
    out["direct_co2e"] = out["combustion_co2e"] + out["process_co2e"]
    out["indirect_co2e"] = out["electricity_co2e"]
    out["total_co2e"] = out["direct_co2e"] + out["indirect_co2e"]
    out = out.reset_index().sort_values(key).reset_index(drop=True)
    out.columns.name = None
    return out[[key] + _SUMMARY_COLUMNS]


def summarize_by_period(result: Dict[str, Any]) -> pd.DataFrame:
    """Per-period totals; process column follows the same blocks/legacy switch as the summary."""
    return _rollup(result, "period")


def summarize_by_process(result: Dict[str, Any]) -> pd.DataFrame:
    return _rollup(result, "process_id")

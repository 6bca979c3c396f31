from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

import numpy as np
import pandas as pd

from carbon_ledger.config import get_settings
from carbon_ledger.data.reference import ReferenceTables, _non_negative, _to_float, default_reference_tables
from carbon_ledger.engine.models import AllocationSettings, Product
from carbon_ledger.mrv.lineage import sha256_json

logger = logging.getLogger(__name__)

PCF_COLUMNS = [
    "product_id",
    "product_name",
    "cn_code",
    "quantity",
    "is_residue",
    "is_excluded",
    "is_complex",
    "share",
    "allocated_direct",
    "allocated_indirect",
    "allocated_total",
    "precursor_emissions",
    "total_embedded",
    "see",
    "see_direct",
    "see_indirect",
]


def _summary_totals(emission_result: Mapping[str, Any]) -> tuple:
    summary = emission_result.get("summary") or {}
    return _to_float(summary.get("direct_co2e")), _to_float(summary.get("indirect_co2e"))


def _is_complex(p: Product, tables: ReferenceTables) -> bool:
    if p.is_complex is not None:
        return bool(p.is_complex)
    return tables.is_complex(p.cn_code)


def _precursor_emissions(p: Product) -> float:
    return float(sum(_non_negative(pc.mass) * _non_negative(pc.see) for pc in p.precursors))


def _settings(allocation_settings: Optional[AllocationSettings]) -> AllocationSettings:
    if allocation_settings is not None:
        return allocation_settings
    return AllocationSettings(treat_residue_as_waste=get_settings().TREAT_RESIDUE_AS_WASTE)


def calculate_pcf(
    emission_result: Mapping[str, Any],
    products: Iterable[Union[Product, Mapping[str, Any]]],
    allocation_settings: Optional[AllocationSettings] = None,
    tables: Optional[ReferenceTables] = None,
) -> List[Dict[str, Any]]:
    """Ürün karbon ayak izi (mass-based).

    Every product gets a row; residues treated as waste are flagged
    is_excluded with share 0. Precursor emissions of complex goods are added
    on top of the allocated total, never share-allocated.
    """
    t = tables or default_reference_tables()
    s = _settings(allocation_settings)
    if s.method != "mass":
        logger.warning("Allocation method %r not supported; using mass", s.method)

    prods = list(products or [])
    if any(not isinstance(p, Product) for p in prods):
        from carbon_ledger.services.ingestion import normalize_products

        prods = list(normalize_products(prods))
    if not prods:
        return []

    direct_total, indirect_total = _summary_totals(emission_result)

    df = pd.DataFrame(
        {
            "product_id": [p.product_id for p in prods],
            "product_name": [p.name for p in prods],
            "cn_code": [p.cn_code for p in prods],
            "quantity": [_non_negative(p.quantity) for p in prods],
            "is_residue": [bool(p.is_residue) for p in prods],
            "is_complex": [_is_complex(p, t) for p in prods],
            "precursor_emissions": [
                _precursor_emissions(p) if _is_complex(p, t) else 0.0 for p in prods
            ],
        }
    )
    df["is_excluded"] = df["is_residue"] & bool(s.treat_residue_as_waste)

    eligible_mass = float(df.loc[~df["is_excluded"], "quantity"].sum())
    if eligible_mass > 0:
        df["share"] = np.where(df["is_excluded"], 0.0, df["quantity"] / eligible_mass)
    else:
        df["share"] = 0.0

    df["allocated_direct"] = direct_total * df["share"]
    df["allocated_indirect"] = indirect_total * df["share"]
    df["allocated_total"] = df["allocated_direct"] + df["allocated_indirect"]
    df["total_embedded"] = df["allocated_total"] + df["precursor_emissions"]

    qty = df["quantity"]
    safe_qty = qty.where(qty > 0, 1.0)
    df["see"] = np.where(qty > 0, df["total_embedded"] / safe_qty, 0.0)
    df["see_direct"] = np.where(qty > 0, df["allocated_direct"] / safe_qty, 0.0)
    df["see_indirect"] = np.where(qty > 0, df["allocated_indirect"] / safe_qty, 0.0)

    rows: List[Dict[str, Any]] = []
    for r in df[PCF_COLUMNS].to_dict(orient="records"):
        rows.append(
            {
                k: (bool(v) if isinstance(v, (bool, np.bool_)) else float(v) if isinstance(v, (float, np.floating)) else v)
                for k, v in r.items()
            }
        )
    return rows


def calculate_pcf_bundle(
    emission_result: Mapping[str, Any],
    products: Iterable[Union[Product, Mapping[str, Any]]],
    allocation_settings: Optional[AllocationSettings] = None,
    tables: Optional[ReferenceTables] = None,
) -> Dict[str, Any]:
    """calculate_pcf + deterministic hash of the row set."""
    s = _settings(allocation_settings)
    rows = calculate_pcf(emission_result, products, s, tables)
    direct_total, indirect_total = _summary_totals(emission_result)
    meta = {
        "allocation_method": "mass",
        "treat_residue_as_waste": bool(s.treat_residue_as_waste),
        "totals": {"direct_co2e": direct_total, "indirect_co2e": indirect_total},
        "share_sum": float(sum(r["share"] for r in rows)),
        "emission_result_hash": ((emission_result.get("meta") or {}).get("result_hash")),
    }
    meta["pcf_hash"] = sha256_json({"rows": rows, "meta": meta}, digits=get_settings().HASH_DIGITS)
    return {"products": rows, "meta": meta}


def main_product(rows: Sequence[Mapping[str, Any]]) -> Optional[Mapping[str, Any]]:
    """First non-excluded product (feeds the CBAM projection by default)."""
    for r in rows or []:
        if not r.get("is_excluded"):
            return r
    return None


def allocation_frame(rows: Sequence[Mapping[str, Any]]) -> pd.DataFrame:
    if not rows:
        return pd.DataFrame(columns=PCF_COLUMNS)
    df = pd.DataFrame(list(rows))
    for c in PCF_COLUMNS:
        if c not in df.columns:
            df[c] = None
    return df[PCF_COLUMNS]

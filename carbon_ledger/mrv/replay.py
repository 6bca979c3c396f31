from __future__ import annotations

import math
from typing import Any, Dict, List, Mapping

from carbon_ledger.config import get_settings
from carbon_ledger.engine.formula import evaluate
from carbon_ledger.mrv.lineage import sha256_json


def _v(node: Mapping[str, Any], *path: str) -> float:
    cur: Any = node
    for p in path:
        cur = (cur or {}).get(p)
    if isinstance(cur, Mapping):
        cur = cur.get("value")
    try:
        return float(cur or 0.0)
    except (TypeError, ValueError):
        return 0.0


def replay_combustion(lineage: Mapping[str, Any]) -> Dict[str, float]:
    """Recompute a combustion entry from its lineage record only (same operation order)."""
    quantity = _v(lineage, "inputs", "quantity")
    ncv = _v(lineage, "inputs", "ncv")
    gwp = lineage.get("gwp") or {}

    energy_gj = quantity * ncv
    energy_tj = energy_gj / 1000.0
    co2 = energy_tj * _v(lineage, "factors", "ef_co2") / 1000.0
    ch4 = energy_tj * _v(lineage, "factors", "ef_ch4") / 1000.0
    n2o = energy_tj * _v(lineage, "factors", "ef_n2o") / 1000.0
    co2e = co2 * float(gwp.get("CO2", 1.0)) + ch4 * float(gwp.get("CH4", 0.0)) + n2o * float(gwp.get("N2O", 0.0))
    return {"energy_gj": energy_gj, "energy_tj": energy_tj, "co2": co2, "ch4": ch4, "n2o": n2o, "co2e": co2e}


def replay_electricity(lineage: Mapping[str, Any]) -> Dict[str, float]:
    return {"co2e": _v(lineage, "inputs", "mwh") * _v(lineage, "inputs", "ef")}


def replay_block(lineage: Mapping[str, Any]) -> Dict[str, Any]:
    if not lineage or not lineage.get("formula"):
        return {"tonnes": 0.0, "co2e": 0.0, "error": None}
    res = evaluate(str(lineage["formula"]), lineage.get("variables") or {})
    if res["error"]:
        return {"tonnes": 0.0, "co2e": 0.0, "error": res["error"]}
    tonnes = float(res["value"] or 0.0)
    return {"tonnes": tonnes, "co2e": tonnes * float(lineage.get("gwp_factor") or 1.0), "error": None}


def verify_emission_result(result: Mapping[str, Any], *, rel_tol: float = 1e-9) -> Dict[str, Any]:
    """Audit replay.

    Doğrulamalar:
      - each combustion / electricity / block entry recomputed from its lineage
      - result_hash recomputed over the result body
    """
    mismatches: List[Dict[str, Any]] = []
    checked = 0

    def compare(kind: str, ident: Any, recorded: Mapping[str, Any], replayed: Mapping[str, Any]) -> None:
        for k, new in replayed.items():
            if k == "error":
                continue
            old = float(recorded.get(k) or 0.0)
            if not math.isclose(old, float(new), rel_tol=rel_tol, abs_tol=1e-12):
                mismatches.append({"kind": kind, "id": ident, "field": k, "recorded": old, "replayed": float(new)})

    for e in (result.get("combustion") or {}).get("entries") or []:
        checked += 1
        compare("combustion", e.get("entry_id"), e, replay_combustion(e.get("lineage") or {}))

    for e in (result.get("electricity") or {}).get("entries") or []:
        checked += 1
        compare("electricity", e.get("entry_id"), e, replay_electricity(e.get("lineage") or {}))

    for e in (result.get("emission_blocks") or {}).get("entries") or []:
        if e.get("error"):
            continue
        checked += 1
        compare("emission_block", e.get("block_id"), e, replay_block(e.get("lineage") or {}))

    recorded_hash = (result.get("meta") or {}).get("result_hash")
    body = {k: v for k, v in result.items() if k != "meta"}
    replayed_hash = sha256_json(body, digits=get_settings().HASH_DIGITS)
    hash_match = recorded_hash == replayed_hash

    return {
        "checked": checked,
        "mismatches": mismatches,
        "recorded_hash": recorded_hash,
        "replayed_hash": replayed_hash,
        "hash_match": hash_match,
        "match": hash_match and not mismatches,
    }

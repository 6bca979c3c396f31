from __future__ import annotations

import logging
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

import pandas as pd

from carbon_ledger.data.reference import (
    ReferenceTables,
    _non_negative,
    _opt_float,
    _text,
    _to_float,
    default_reference_tables,
)
from carbon_ledger.engine.models import (
    ActivityData,
    BlockParameter,
    ElectricityEntry,
    EmissionBlock,
    FuelEntry,
    Precursor,
    ProcessEvent,
    Product,
)

logger = logging.getLogger(__name__)

# Tek eşleme katmanı: raw record (snake_case / camelCase / DataFrame) -> canonical dataclass.

_CAMEL = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")

_KEY_ALIASES = {
    "stable_id": "entry_id",
    "id": "entry_id",
    "fuel_type": "fuel_type_id",
    "custom_ncv": "ncv",
    "custom_ef_co2": "ef_co2",
    "custom_ef_ch4": "ef_ch4",
    "custom_ef_n2o": "ef_n2o",
    "grid_ef": "ef",
    "product_name": "name",
    "residue": "is_residue",
    "output": "output_gas",
    "gas": "output_gas",
}

Records = Union[pd.DataFrame, Iterable[Mapping[str, Any]], None]


def snake_key(key: Any) -> str:
    """metalProduction -> metal_production, 'Output Gas' -> output_gas."""
    s = _CAMEL.sub("_", str(key or "").strip())
    return s.lower().replace(" ", "_").replace("-", "_")


def canonical_record(raw: Mapping[str, Any]) -> Dict[str, Any]:
    """Snake-case keys + known aliases. The first spelling found wins."""
    out: Dict[str, Any] = {}
    for k, v in dict(raw or {}).items():
        key = snake_key(k)
        key = _KEY_ALIASES.get(key, key)
        if key not in out or out[key] is None:
            out[key] = v
    return out


def records_from_frame(df: Optional[pd.DataFrame]) -> List[Dict[str, Any]]:
    if df is None or len(df) == 0:
        return []
    d = df.astype(object).where(pd.notna(df), None)
    return [dict(r) for r in d.to_dict(orient="records")]


def _records(raw: Records) -> List[Dict[str, Any]]:
    if raw is None:
        return []
    if isinstance(raw, pd.DataFrame):
        return records_from_frame(raw)
    return [dict(r) for r in raw]


def _override(x: Any) -> Optional[float]:
    # blank or zero override = not supplied
    f = _opt_float(x)
    return f if f else None


def _flag(x: Any) -> bool:
    if isinstance(x, str):
        return x.strip().lower() in ("1", "true", "yes", "y", "on", "evet")
    try:
        if pd.isna(x):
            return False
    except (TypeError, ValueError):
        pass
    return bool(x)


def _opt_flag(x: Any) -> Optional[bool]:
    if x is None or (isinstance(x, str) and not x.strip()):
        return None
    return _flag(x)


# ----------------------------
# Per-record normalisers
# ----------------------------
def normalize_fuel(raw: Mapping[str, Any]) -> FuelEntry:
    r = canonical_record(raw)
    return FuelEntry(
        entry_id=_text(r.get("entry_id")),
        period=_text(r.get("period")),
        process_id=_text(r.get("process_id")),
        fuel_type_id=snake_key(_text(r.get("fuel_type_id"))) or "custom",
        quantity=_non_negative(r.get("quantity")),
        unit=_text(r.get("unit")) or "t",
        ncv=_override(r.get("ncv")),
        ef_co2=_override(r.get("ef_co2")),
        ef_ch4=_override(r.get("ef_ch4")),
        ef_n2o=_override(r.get("ef_n2o")),
    )


def normalize_electricity(raw: Mapping[str, Any], tables: Optional[ReferenceTables] = None) -> ElectricityEntry:
    r = canonical_record(raw)
    country = _text(r.get("grid_country")).upper()
    override = _flag(r.get("ef_override"))
    ef = _opt_float(r.get("ef"))
    if ef is None and country:
        # no factor on the record: grid default for the country
        ef = (tables or default_reference_tables()).grid_ef(country)
        override = False
    return ElectricityEntry(
        entry_id=_text(r.get("entry_id")),
        period=_text(r.get("period")),
        process_id=_text(r.get("process_id")),
        mwh=_non_negative(r.get("mwh")),
        ef=ef if ef and ef > 0 else 0.0,
        ef_override=override,
        grid_country=country,
    )


def normalize_process_event(raw: Mapping[str, Any]) -> ProcessEvent:
    r = canonical_record(raw)
    return ProcessEvent(
        period=_text(r.get("period")),
        process_id=_text(r.get("process_id")),
        parameter=snake_key(_text(r.get("parameter"))),
        value=_to_float(r.get("value")),
    )


def _block_parameters(raw: Any) -> Tuple[BlockParameter, ...]:
    if isinstance(raw, Mapping):
        # {"key": value} shorthand
        return tuple(BlockParameter(key=str(k), value=_to_float(v)) for k, v in raw.items())
    out: List[BlockParameter] = []
    for p in raw or []:
        # parameter keys are formula identifiers: keep their spelling
        key = _text(p.get("key"))
        if not key:
            continue
        value = p.get("value")
        if value is None:
            value = p.get("default_value", p.get("defaultValue"))
        out.append(
            BlockParameter(
                key=key,
                value=_to_float(value),
                unit=_text(p.get("unit")),
                label=_text(p.get("label")),
            )
        )
    return tuple(out)


def normalize_block(raw: Mapping[str, Any]) -> EmissionBlock:
    r = canonical_record(raw)
    return EmissionBlock(
        block_id=_text(r.get("block_id") or r.get("entry_id")),
        period=_text(r.get("period")),
        process_id=_text(r.get("process_id")),
        output_gas=_text(r.get("output_gas")).upper() or "CO2",
        formula=_text(r.get("formula")),
        parameters=_block_parameters(r.get("parameters")),
        name=_text(r.get("name")),
        source=_text(r.get("source")) or "User-defined",
        template_id=_text(r.get("template_id")),
    )


def normalize_precursor(raw: Mapping[str, Any]) -> Precursor:
    r = canonical_record(raw)
    return Precursor(
        name=_text(r.get("name")),
        mass=_non_negative(r.get("mass")),
        see=_non_negative(r.get("see")),
        source_type=_text(r.get("source_type")).lower() or "actual",
        cn_code=_text(r.get("cn_code")),
    )


def normalize_product(raw: Mapping[str, Any]) -> Product:
    r = canonical_record(raw)
    return Product(
        product_id=_text(r.get("product_id") or r.get("entry_id")),
        name=_text(r.get("name")),
        quantity=_non_negative(r.get("quantity")),
        is_residue=_flag(r.get("is_residue")),
        cn_code=_text(r.get("cn_code")),
        is_complex=_opt_flag(r.get("is_complex")),
        precursors=tuple(normalize_precursor(p) for p in (r.get("precursors") or [])),
    )


# ----------------------------
# Collections
# ----------------------------
def normalize_products(raw: Records) -> Tuple[Product, ...]:
    return tuple(p if isinstance(p, Product) else normalize_product(p) for p in _records_or_objects(raw))


def _records_or_objects(raw: Any) -> List[Any]:
    if isinstance(raw, pd.DataFrame):
        return records_from_frame(raw)
    return list(raw or [])


def normalize_activity(raw: Union[ActivityData, Mapping[str, Any], None], tables: Optional[ReferenceTables] = None) -> ActivityData:
    """Raw activity bundle -> ActivityData.

    Accepts {"fuels", "electricity", "process_events" | "processEvents",
    "emission_blocks" | "emissionBlocks"}; each value a list of dicts or a DataFrame.
    """
    if isinstance(raw, ActivityData):
        return raw
    r = canonical_record(raw or {})

    fuels = tuple(normalize_fuel(x) for x in _records(r.get("fuels")))
    elec = tuple(normalize_electricity(x, tables) for x in _records(r.get("electricity")))
    events = tuple(normalize_process_event(x) for x in _records(r.get("process_events")))
    blocks = tuple(normalize_block(x) for x in _records(r.get("emission_blocks")))

    logger.debug(
        "Normalized activity: %d fuels, %d electricity, %d process events, %d blocks",
        len(fuels),
        len(elec),
        len(events),
        len(blocks),
    )
    return ActivityData(fuels=fuels, electricity=elec, process_events=events, emission_blocks=blocks)

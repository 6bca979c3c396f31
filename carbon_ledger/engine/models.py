from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional, Tuple

# Canonical schema consumed by every engine module.
# Raw records (snake_case / camelCase dicts, DataFrames) are mapped here by
# carbon_ledger.services.ingestion; the engine never looks at raw field names.

GASES = ("CO2", "CH4", "N2O", "CF4", "C2F6")


# -------------------------
# Activity data
# -------------------------
@dataclass(frozen=True)
class FuelEntry:
    entry_id: str
    period: str  # YYYY-MM
    process_id: str
    fuel_type_id: str
    quantity: float
    unit: str = "t"
    # None = not supplied, fuel-type default applies
    ncv: Optional[float] = None  # GJ / t
    ef_co2: Optional[float] = None  # kg / TJ
    ef_ch4: Optional[float] = None
    ef_n2o: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ElectricityEntry:
    entry_id: str
    period: str
    process_id: str
    mwh: float
    ef: float  # tCO2e / MWh
    ef_override: bool = False
    grid_country: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ProcessEvent:
    """Legacy aluminium process parameter row (anode / PFC)."""

    period: str
    process_id: str
    parameter: str
    value: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class BlockParameter:
    key: str
    value: float
    unit: str = ""
    label: str = ""


@dataclass(frozen=True)
class EmissionBlock:
    block_id: str
    period: str
    process_id: str
    output_gas: str
    formula: str
    parameters: Tuple[BlockParameter, ...] = ()
    name: str = ""
    source: str = "User-defined"
    # process template the block was created from ("" = hand-written)
    template_id: str = ""

    def variables(self) -> Dict[str, float]:
        # later keys win, same as building a dict in order
        return {p.key: p.value for p in self.parameters}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "block_id": self.block_id,
            "period": self.period,
            "process_id": self.process_id,
            "output_gas": self.output_gas,
            "formula": self.formula,
            "parameters": [asdict(p) for p in self.parameters],
            "name": self.name,
            "source": self.source,
            "template_id": self.template_id,
        }


@dataclass(frozen=True)
class ActivityData:
    fuels: Tuple[FuelEntry, ...] = ()
    electricity: Tuple[ElectricityEntry, ...] = ()
    process_events: Tuple[ProcessEvent, ...] = ()
    emission_blocks: Tuple[EmissionBlock, ...] = ()


# -------------------------
# Products / allocation
# -------------------------
@dataclass(frozen=True)
class Precursor:
    name: str
    mass: float  # t precursor per t product
    see: float  # tCO2e / t precursor
    source_type: str = "actual"  # actual | default
    cn_code: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Product:
    product_id: str
    name: str
    quantity: float
    is_residue: bool = False
    cn_code: str = ""
    # None: derive from the CN registry in the reference tables
    is_complex: Optional[bool] = None
    precursors: Tuple[Precursor, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "quantity": self.quantity,
            "is_residue": self.is_residue,
            "cn_code": self.cn_code,
            "is_complex": self.is_complex,
            "precursors": [p.to_dict() for p in self.precursors],
        }


@dataclass(frozen=True)
class AllocationSettings:
    method: str = "mass"
    treat_residue_as_waste: bool = True

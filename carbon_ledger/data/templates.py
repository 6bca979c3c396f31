from __future__ import annotations

"""Sector process-emission templates.

Each template is a named formula over typed parameters and can be turned
into an EmissionBlock with instantiate_template().
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from carbon_ledger.engine.models import BlockParameter, EmissionBlock


@dataclass(frozen=True)
class TemplateParameter:
    key: str
    label: str
    unit: str
    default: float = 0.0


@dataclass(frozen=True)
class ProcessTemplate:
    id: str
    sector: str
    name: str
    output_gas: str
    formula: str
    source: str
    parameters: Tuple[TemplateParameter, ...] = ()

    def keys(self) -> List[str]:
        return [p.key for p in self.parameters]


_P = TemplateParameter
_IPCC_METAL = "IPCC 2006 Vol.3 Ch.4"

PROCESS_TEMPLATES: Tuple[ProcessTemplate, ...] = (
    # Aluminium
    ProcessTemplate(
        "al_anode",
        "Aluminium",
        "Anode Consumption CO2",
        "CO2",
        "production * anode_rate / 1000 * (carbon - sulfur - ash) * 44 / 12",
        _IPCC_METAL,
        (
            _P("production", "Metal Production", "t"),
            _P("anode_rate", "Net Anode Consumption", "kg/t Al", 420),
            _P("carbon", "Carbon Fraction", "fraction", 0.95),
            _P("sulfur", "Sulfur Fraction", "fraction", 0.02),
            _P("ash", "Ash Fraction", "fraction", 0.01),
        ),
    ),
    ProcessTemplate(
        "al_pfc_cf4",
        "Aluminium",
        "PFC - CF4 Emissions",
        "CF4",
        "production * aem * slope",
        _IPCC_METAL,
        (
            _P("production", "Metal Production", "t"),
            _P("aem", "Anode Effect Minutes", "min/cell-day", 0.25),
            _P("slope", "CF4 Slope Factor", "t CF4/(t Al x AEM)", 0.00006),
        ),
    ),
    ProcessTemplate(
        "al_pfc_c2f6",
        "Aluminium",
        "PFC - C2F6 Emissions",
        "C2F6",
        "production * aem * slope * ratio",
        _IPCC_METAL,
        (
            _P("production", "Metal Production", "t"),
            _P("aem", "Anode Effect Minutes", "min/cell-day", 0.25),
            _P("slope", "CF4 Slope Factor", "t CF4/(t Al x AEM)", 0.00006),
            _P("ratio", "C2F6/CF4 Ratio", "ratio", 0.1),
        ),
    ),
    # Cement
    ProcessTemplate(
        "cement_calcination",
        "Cement",
        "Calcination CO2 (CaCO3 -> CaO)",
        "CO2",
        "clinker * cao_ratio * 44 / 56",
        "IPCC 2006 Vol.3 Ch.2 Eq.2.1",
        (_P("clinker", "Clinker Production", "t"), _P("cao_ratio", "CaO Content", "fraction", 0.65)),
    ),
    ProcessTemplate(
        "cement_mgo",
        "Cement",
        "MgCO3 Decomposition CO2",
        "CO2",
        "clinker * mgo_ratio * 44 / 40",
        "IPCC 2006 Vol.3 Ch.2 Eq.2.1",
        (_P("clinker", "Clinker Production", "t"), _P("mgo_ratio", "MgO Content", "fraction", 0.015)),
    ),
    ProcessTemplate(
        "cement_ckd",
        "Cement",
        "Cement Kiln Dust (CKD) CO2",
        "CO2",
        "clinker * ckd_ratio * ef_ckd",
        "IPCC 2006 Vol.3 Ch.2",
        (
            _P("clinker", "Clinker Production", "t"),
            _P("ckd_ratio", "CKD Fraction", "fraction", 0.02),
            _P("ef_ckd", "CKD Emission Factor", "tCO2/t CKD", 0.525),
        ),
    ),
    # Iron & Steel
    ProcessTemplate(
        "steel_reducing_agent",
        "Iron & Steel",
        "Reducing Agent CO2 (Coke/Coal)",
        "CO2",
        "agent_mass * carbon_content * 44 / 12",
        _IPCC_METAL,
        (_P("agent_mass", "Reducing Agent Mass", "t"), _P("carbon_content", "Carbon Content", "fraction", 0.85)),
    ),
    ProcessTemplate(
        "steel_limestone",
        "Iron & Steel",
        "Limestone/Dolomite Flux CO2",
        "CO2",
        "limestone * 0.44 + dolomite * 0.477",
        _IPCC_METAL,
        (_P("limestone", "Limestone Consumption", "t"), _P("dolomite", "Dolomite Consumption", "t")),
    ),
    ProcessTemplate(
        "steel_electrode",
        "Iron & Steel",
        "Electrode Consumption CO2 (EAF)",
        "CO2",
        "electrode_mass * carbon_content * 44 / 12",
        _IPCC_METAL,
        (_P("electrode_mass", "Electrode Consumption", "t"), _P("carbon_content", "Carbon Content", "fraction", 0.82)),
    ),
    # Fertilisers
    ProcessTemplate(
        "fert_n2o_nitric",
        "Fertilisers",
        "N2O from Nitric Acid Production",
        "N2O",
        "hno3_production * ef_n2o / 1000 * (1 - destruction)",
        "IPCC 2006 Vol.3 Ch.3",
        (
            _P("hno3_production", "HNO3 Production", "t"),
            _P("ef_n2o", "N2O Emission Factor", "kg/t", 7),
            _P("destruction", "Destruction Factor", "fraction", 0.9),
        ),
    ),
    ProcessTemplate(
        "fert_co2_urea",
        "Fertilisers",
        "CO2 from Urea Production",
        "CO2",
        "urea_production * 44 / 60 * purity",
        "IPCC 2006 Vol.3 Ch.3",
        (_P("urea_production", "Urea Production", "t"), _P("purity", "Urea Purity", "fraction", 0.97)),
    ),
    # Hydrogen
    ProcessTemplate(
        "h2_smr",
        "Hydrogen",
        "Steam Methane Reforming CO2",
        "CO2",
        "feedstock * carbon_content * 44 / 12",
        "IPCC default methodology",
        (_P("feedstock", "Natural Gas Feedstock", "t"), _P("carbon_content", "Carbon Content", "fraction", 0.75)),
    ),
    ProcessTemplate("custom", "Custom", "Custom Process Emission", "CO2", "", "User-defined"),
)

# sector -> groups of template ids; an installation needs one block per group
SECTOR_REQUIRED_TEMPLATES: Dict[str, Tuple[Tuple[Tuple[str, ...], str], ...]] = {
    "Aluminium": ((("al_anode",), "Anode Consumption CO2"), (("al_pfc_cf4", "al_pfc_c2f6"), "PFC Emissions (CF4 + C2F6)")),
    "Cement": ((("cement_calcination",), "Calcination CO2"),),
    "Iron & Steel": ((("steel_reducing_agent",), "Reducing Agent CO2"),),
    "Fertilisers": ((("fert_n2o_nitric",), "N2O from Nitric Acid"),),
}


def get_template(template_id: str) -> Optional[ProcessTemplate]:
    for t in PROCESS_TEMPLATES:
        if t.id == template_id:
            return t
    return None


def sectors() -> List[str]:
    out: List[str] = []
    for t in PROCESS_TEMPLATES:
        if t.sector not in out:
            out.append(t.sector)
    return out


def templates_for_sector(sector: str) -> List[ProcessTemplate]:
    return [t for t in PROCESS_TEMPLATES if t.sector == sector]


def instantiate_template(
    template_id: str,
    period: str,
    process_id: str,
    *,
    block_id: Optional[str] = None,
    **values: Any,
) -> Optional[EmissionBlock]:
    """Fresh block pre-filled with template defaults; keyword values override them."""
    tpl = get_template(template_id)
    if tpl is None:
        return None
    params = tuple(
        BlockParameter(key=p.key, value=float(values.get(p.key, p.default)), unit=p.unit, label=p.label)
        for p in tpl.parameters
    )
    return EmissionBlock(
        block_id=block_id or f"eb_{tpl.id}_{period}_{process_id}",
        period=period,
        process_id=process_id,
        output_gas=tpl.output_gas,
        formula=tpl.formula,
        parameters=params,
        name=tpl.name,
        source=tpl.source,
        template_id=tpl.id,
    )


def _template_ref(item: Any) -> str:
    if isinstance(item, EmissionBlock):
        return item.template_id
    if isinstance(item, Mapping):
        return str(item.get("template_id") or item.get("templateId") or "")
    return str(item or "")


def check_sector_completeness(blocks: Iterable[Union[EmissionBlock, Mapping[str, Any], str]]) -> Dict[str, Any]:
    """Sectors inferred from the templates in use, and any required group left uncovered.

    Accepts emission blocks (their template_id), raw block dicts or bare template ids.
    """
    used = {ref for ref in (_template_ref(b) for b in blocks or []) if ref}
    active: List[str] = []
    for t in PROCESS_TEMPLATES:
        if t.id in used and t.sector != "Custom" and t.sector not in active:
            active.append(t.sector)

    missing = []
    for sector in active:
        for ids, label in SECTOR_REQUIRED_TEMPLATES.get(sector, ()):
            if not any(i in used for i in ids):
                missing.append({"sector": sector, "label": label})
    return {"sectors": active, "missing": missing, "complete": not missing}

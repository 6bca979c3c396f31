import pytest

from carbon_ledger.config import get_settings
from carbon_ledger.data.reference import default_reference_tables
from carbon_ledger.engine.models import (
    ActivityData,
    BlockParameter,
    ElectricityEntry,
    EmissionBlock,
    FuelEntry,
    ProcessEvent,
    Product,
)


@pytest.fixture(autouse=True)
def _fresh_settings(monkeypatch):
    # settings are cached; tests that set CARBON_LEDGER_* env vars need a clean cache
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def tables():
    return default_reference_tables()


@pytest.fixture
def gas_entry():
    return FuelEntry(entry_id="f1", period="2025-01", process_id="p_smelter", fuel_type_id="natural_gas", quantity=500)


@pytest.fixture
def grid_entry():
    return ElectricityEntry(
        entry_id="e1", period="2025-01", process_id="p_smelter", mwh=14500, ef=0.328, grid_country="NL"
    )


@pytest.fixture
def legacy_events():
    params = {
        "metal_production": 10000,
        "net_anode_consumption": 420,
        "anode_carbon_fraction": 0.95,
        "anode_sulfur_fraction": 0.02,
        "anode_ash_fraction": 0.01,
        "aem_minutes": 0.25,
        "cf4_slope_factor": 0.00006,
        "c2f6_cf4_ratio": 0.1,
    }
    return tuple(ProcessEvent("2025-01", "p_smelter", k, v) for k, v in params.items())


@pytest.fixture
def anode_block():
    return EmissionBlock(
        block_id="b1",
        period="2025-01",
        process_id="p_smelter",
        output_gas="CO2",
        formula="production * anode_rate / 1000 * (carbon - sulfur - ash) * 44 / 12",
        parameters=(
            BlockParameter("production", 10000),
            BlockParameter("anode_rate", 420),
            BlockParameter("carbon", 0.95),
            BlockParameter("sulfur", 0.02),
            BlockParameter("ash", 0.01),
        ),
        name="Anode",
    )


@pytest.fixture
def demo_activity(gas_entry, grid_entry, legacy_events):
    return ActivityData(fuels=(gas_entry,), electricity=(grid_entry,), process_events=legacy_events)


@pytest.fixture
def demo_products():
    return (
        Product("prod_ingot", "Primary ingot", 8000, cn_code="7601 10 00"),
        Product("prod_wire", "Wire rod", 2000, cn_code="7605"),
        Product("prod_dross", "Dross", 500, is_residue=True),
    )

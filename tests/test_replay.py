import dataclasses

from carbon_ledger.engine.emissions import calculate_total_emissions
from carbon_ledger.engine.models import ActivityData, BlockParameter, EmissionBlock
from carbon_ledger.mrv.replay import replay_block, replay_combustion, verify_emission_result


def test_replay_matches_engine(demo_activity, anode_block):
    activity = dataclasses.replace(demo_activity, emission_blocks=(anode_block,))
    res = calculate_total_emissions(activity)
    check = verify_emission_result(res)
    assert check["checked"] == 3
    assert check["mismatches"] == []
    assert check["hash_match"] is True
    assert check["match"] is True


def test_replay_combustion_from_lineage(demo_activity):
    entry = calculate_total_emissions(demo_activity)["combustion"]["entries"][0]
    again = replay_combustion(entry["lineage"])
    assert again["co2e"] == entry["co2e"]
    assert again["energy_tj"] == entry["energy_tj"]


def test_tampered_result_is_detected(demo_activity):
    res = calculate_total_emissions(demo_activity)
    res["combustion"]["entries"][0]["co2e"] += 1.0
    check = verify_emission_result(res)
    assert check["match"] is False
    assert check["hash_match"] is False
    assert check["mismatches"][0]["kind"] == "combustion"


def test_errored_blocks_are_skipped():
    bad = EmissionBlock("b_bad", "2025-01", "p1", "CO2", "a / 0", (BlockParameter("a", 1),))
    res = calculate_total_emissions(ActivityData(emission_blocks=(bad,)))
    assert verify_emission_result(res)["checked"] == 0


def test_replay_block_empty_lineage():
    assert replay_block({}) == {"tonnes": 0.0, "co2e": 0.0, "error": None}

"""
Tests for deterministic cycle ids.
"""
from kig.utility.run_id import generate_run_id


def test_same_components_same_id():
    components = ["new_orders", "2024-01-01T10:00:00+00:00"]
    assert generate_run_id(components) == generate_run_id(list(components))


def test_different_components_different_id():
    assert generate_run_id(["a", "1"]) != generate_run_id(["a", "2"])


def test_id_is_32_hex_characters():
    run_id = generate_run_id(["poller", "time"])
    assert len(run_id) == 32
    int(run_id, 16)

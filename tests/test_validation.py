"""Input validation helpers and the per-plant lock registry."""

from __future__ import annotations
import threading

import pytest

from plantcare.config import BaseConfig
from plantcare.constants import DEFAULT_HISTORY_LIMIT
from plantcare.utils.locks import KeyedLock
from plantcare.utils.validation import (
    clean_text,
    is_valid_uuid,
    parse_water_frequency,
    validate_plant_fields,
)


@pytest.mark.parametrize("value, expected", [
    (3, 3),
    ("14", 14),
    (" 7 ", 7),
    (10.0, 10),
    (365, 365),
])
def test_parse_water_frequency_accepts(value, expected):
    assert parse_water_frequency(value) == (expected, None)


@pytest.mark.parametrize("value", [0, -1, 366, 2.5, "weekly", True, None, [3]])
def test_parse_water_frequency_rejects(value):
    days, error = parse_water_frequency(value)
    assert days is None
    assert error


def test_create_fills_defaults():
    payload, error = validate_plant_fields({"name": "Fernie", "species": "Boston Fern"})
    assert error is None
    assert payload == {
        "name": "Fernie",
        "type": "Boston Fern",
        "location": None,
        "light_requirement": None,
        "water_frequency_days": 7,
        "notes": None,
    }


def test_partial_update_only_returns_given_fields():
    payload, error = validate_plant_fields({"location": "  kitchen  "}, partial=True)
    assert error is None
    assert payload == {"location": "kitchen"}


def test_partial_update_can_clear_optional_field():
    payload, error = validate_plant_fields({"notes": None}, partial=True)
    assert error is None
    assert payload == {"notes": None}


def test_partial_update_rejects_null_frequency():
    _, error = validate_plant_fields({"water_frequency_days": None}, partial=True)
    assert error == "Water frequency is required."


def test_unknown_fields_listed():
    _, error = validate_plant_fields({"name": "A", "type": "B", "colour": "green", "id": "x"})
    assert error == "Unknown plant field(s): colour, id"


def test_names_are_sanitized():
    payload, error = validate_plant_fields({"name": "Fernie 🌿! onclick", "type": "Fern"})
    assert error is None
    assert payload["name"] == "Fernie"


def test_non_text_name_rejected():
    _, error = validate_plant_fields({"name": 42, "type": "Fern"})
    assert error == "Plant name must be text."


def test_clean_text_strips_control_chars():
    assert clean_text("  soak\x00 well   today ") == "soak well today"
    assert clean_text(None) == ""
    assert clean_text("abcdef", max_len=3) == "abc"


def test_is_valid_uuid():
    assert is_valid_uuid("550e8400-e29b-41d4-a716-446655440000")
    assert not is_valid_uuid("550e8400")
    assert not is_valid_uuid(None)


class TestKeyedLock:
    def test_entries_released_after_use(self):
        locks = KeyedLock()
        with locks.hold("a"):
            with locks.hold("b"):
                assert len(locks) == 2
        assert len(locks) == 0

    def test_reentrant_for_same_thread(self):
        locks = KeyedLock()
        with locks.hold("a"):
            with locks.hold("a"):
                assert len(locks) == 1
        assert len(locks) == 0

    def test_same_key_is_exclusive(self):
        locks = KeyedLock()
        inside = []
        overlap = []

        def worker():
            for _ in range(200):
                with locks.hold("plant"):
                    inside.append(1)
                    if len(inside) > 1:
                        overlap.append(True)
                    inside.pop()

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert overlap == []
        assert len(locks) == 0


def test_names_keep_non_ascii_letters():
    payload, error = validate_plant_fields({"name": "Monstera Déliciosa", "type": "月下美人"})
    assert error is None
    assert payload["name"] == "Monstera Déliciosa"
    assert payload["type"] == "月下美人"


def test_config_history_limit_follows_constant():
    assert BaseConfig.DEFAULT_HISTORY_LIMIT == DEFAULT_HISTORY_LIMIT

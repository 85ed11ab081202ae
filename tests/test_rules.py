"""Rule notation, presets and colour rule tests."""

from __future__ import annotations

import time

import pytest

from life3d import RULES, ColorRule, LifeRule, get_rule, parse_rule


def test_parse_ranges_and_lists():
    rule = parse_rule("B6-8/S5-10")
    assert rule.birth == frozenset({6, 7, 8})
    assert rule.survive == frozenset(range(5, 11))


def test_parse_is_order_and_case_insensitive():
    assert parse_rule("s4,5/b5") == RULES["bays4555"]
    assert parse_rule(" B5 / S4, 5 ") == RULES["bays4555"]


def test_empty_sections_mean_empty_sets():
    rule = parse_rule("B/S")
    assert rule.birth == frozenset()
    assert rule.survive == frozenset()
    assert rule.notation == "B/S"
    assert not rule.birth_table.any()


@pytest.mark.parametrize(
    "name, notation",
    [
        ("conway", "B3/S2,3"),
        ("bays4555", "B5/S4,5"),
        ("bays5766", "B6/S5-7"),
        ("permissive", "B6-8/S5-10"),
    ],
)
def test_preset_notation_round_trips(name, notation):
    rule = RULES[name]
    assert rule.notation == notation
    assert str(rule) == notation
    assert parse_rule(rule.notation) == rule


def test_mixed_runs_format():
    rule = LifeRule(birth=frozenset({0, 1, 2, 5, 7, 8, 9, 10}), survive=frozenset({26}))
    assert rule.notation == "B0-2,5,7-10/S26"
    assert parse_rule(rule.notation) == rule


@pytest.mark.parametrize(
    "text",
    ["B27/S1", "B5", "X5/S4", "B5/B4", "B8-6/S1", "Bx/S1", "B-1/S2", "B5/S4/S3", "B5,/S4"],
)
def test_malformed_rules_rejected(text):
    with pytest.raises(ValueError):
        parse_rule(text)


def test_huge_range_rejected_before_expansion():
    start = time.perf_counter()
    with pytest.raises(ValueError, match="outside"):
        parse_rule("B0-999999999/S")
    assert time.perf_counter() - start < 0.5


def test_life_rule_rejects_out_of_range_counts():
    with pytest.raises(ValueError, match="survive"):
        LifeRule(birth=frozenset({3}), survive=frozenset({30}))


def test_get_rule_accepts_names_and_notation():
    assert get_rule("BAYS4555") is RULES["bays4555"]
    assert get_rule("B5/S4,5") == RULES["bays4555"]
    with pytest.raises(ValueError):
        get_rule("no-such-rule")


def test_lookup_tables():
    rule = RULES["bays4555"]
    assert rule.birth_table.shape == (27,)
    assert rule.birth_table[5] and not rule.birth_table[4]
    assert rule.survive_table[4] and rule.survive_table[5] and not rule.survive_table[6]
    assert not rule.birth_table.flags.writeable


def test_next_state():
    rule = RULES["conway"]
    assert rule.next_state(True, 2)
    assert rule.next_state(True, 3)
    assert not rule.next_state(True, 4)
    assert rule.next_state(False, 3)
    assert not rule.next_state(False, 2)


def test_color_rule_defaults_and_validation():
    colors = ColorRule()
    assert colors.color_for(True) == (0.0, 1.0, 0.0)
    assert colors.color_for(False) == (1.0, 0.0, 0.0)
    with pytest.raises(ValueError):
        ColorRule(alive=(1.5, 0.0, 0.0))
    with pytest.raises(ValueError):
        ColorRule(dead=(1.0, 0.0))

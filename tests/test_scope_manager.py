import json
import logging

import pytest

from codex.services import ScopeError, ScriptError
from tests.helpers.story_fixtures import make_scopes


def test_global_tier_round_trip() -> None:
    scopes = make_scopes("start")

    scopes.set_global("gold", 10)

    assert scopes.get_global("gold") == 10
    assert scopes.get_global("unknown") is None


def test_global_values_are_copied_at_the_boundary() -> None:
    scopes = make_scopes("start")
    inventory = ["lamp"]
    scopes.set_global("inventory", inventory)

    inventory.append("rope")
    read_back = scopes.get_global("inventory")
    read_back.append("map")

    assert scopes.get_global("inventory") == ["lamp"]


@pytest.mark.parametrize("name", ["s", "t", "visits", "section_id", "goto_section", "_sections"])
def test_reserved_global_names_are_rejected(name: str) -> None:
    scopes = make_scopes("start")

    with pytest.raises(ScopeError):
        scopes.set_global(name, 1)


def test_unsupported_values_are_rejected() -> None:
    scopes = make_scopes("start")

    with pytest.raises(ScopeError):
        scopes.set_global("thing", object())
    with pytest.raises(ScopeError):
        scopes.set_global("pair", (1, 2))
    with pytest.raises(ScopeError):
        scopes.set_global("table", {1: "one"})


def test_unknown_section_namespace_raises_scope_error() -> None:
    scopes = make_scopes("start")

    with pytest.raises(ScopeError):
        scopes.get_section_var("ghost", "x")
    with pytest.raises(ScopeError):
        scopes.set_section_var("ghost", "x", 1)
    with pytest.raises(ScopeError):
        scopes.run("x = 1", "ghost")


def test_internal_section_keys_are_not_addressable() -> None:
    scopes = make_scopes("cave")

    with pytest.raises(ScopeError):
        scopes.set_section_var("cave", "__visits__", 10)


def test_run_binds_section_and_ephemeral_tiers() -> None:
    scopes = make_scopes("start", "cave")
    scopes.set_section_var("cave", "torches", 1)
    scopes.set_ephemeral("echo", "hi")

    scopes.run("s.torches += 1\nt.echo = t.echo + '!'\ngold = 3", "cave")

    assert scopes.get_section_var("cave", "torches") == 2
    assert scopes.get_section_var("start", "torches") is None
    assert scopes.get_ephemeral("echo") == "hi!"
    assert scopes.get_global("gold") == 3
    assert scopes.snapshot_state() == {"gold": 3, "_sections": {"cave": {"torches": 2}}}


def test_visit_counter_and_section_id_are_visible_but_read_only() -> None:
    scopes = make_scopes("cave")
    scopes.increment_visits("cave")

    assert scopes.evaluate("visits", "cave") == 1
    assert scopes.evaluate("section_id", "cave") == "cave"
    with pytest.raises(ScriptError):
        scopes.run("visits = 5", "cave")
    assert scopes.visit_count("cave") == 1


def test_scopes_cannot_be_replaced_from_code() -> None:
    scopes = make_scopes("cave")

    with pytest.raises(ScriptError):
        scopes.run("s = 1", "cave")


def test_navigation_request_is_returned_and_cleared() -> None:
    scopes = make_scopes("start", "cave")

    outcome = scopes.run('goto_section = "start"', "cave")
    second = scopes.run("x = 1", "cave")

    assert outcome.navigation == "start"
    assert second.navigation is None
    assert "goto_section" not in scopes.snapshot_state()


def test_snapshot_excludes_ephemeral_and_round_trips() -> None:
    scopes = make_scopes("start", "cave")
    scopes.set_global("gold", 10)
    scopes.set_section_var("cave", "torches", 2)
    scopes.increment_visits("cave")
    scopes.mark_consumed("cave", "shout")
    scopes.set_ephemeral("temp", 1)

    first = scopes.snapshot_state()
    scopes.restore_state(first)
    second = scopes.snapshot_state()

    assert first == {
        "gold": 10,
        "_sections": {"cave": {"__once__:shout": True, "__visits__": 1, "torches": 2}},
    }
    assert second == first
    assert scopes.get_ephemeral("temp") is None
    assert json.loads(json.dumps(first)) == first


def test_restore_fully_replaces_globals_but_keeps_functions() -> None:
    scopes = make_scopes("start")
    scopes.run("gold = 5\ndef bonus():\n    return 2", None)

    scopes.restore_state({"health": 1})

    assert scopes.get_global("gold") is None
    assert scopes.get_global("health") == 1
    assert scopes.evaluate("bonus()", None) == 2


def test_invalid_blob_is_rejected_without_partial_restore() -> None:
    scopes = make_scopes("cave")
    scopes.set_global("gold", 5)

    with pytest.raises(ScopeError):
        scopes.restore_state({"gold": 1, "_sections": {"cave": {"x": object()}}})
    with pytest.raises(ScopeError):
        scopes.restore_state({"visits": 3})

    assert scopes.get_global("gold") == 5


def test_restore_drops_unknown_sections_with_warning(caplog) -> None:
    scopes = make_scopes("cave")

    with caplog.at_level(logging.WARNING):
        scopes.restore_state({"_sections": {"ghost": {"x": 1}, "cave": {"y": 2}}})

    assert scopes.snapshot_state() == {"_sections": {"cave": {"y": 2}}}
    assert "ghost" in caplog.text


def test_apply_defaults_keeps_existing_values() -> None:
    scopes = make_scopes("cave")
    scopes.set_section_var("cave", "torches", 9)

    scopes.apply_defaults("cave", {"torches": 3, "bats": False})

    assert scopes.section_vars("cave") == {"torches": 9, "bats": False}


def test_transaction_rolls_back_on_failure() -> None:
    scopes = make_scopes("cave")
    scopes.set_global("gold", 10)
    scopes.set_ephemeral("echo", "drip")

    with pytest.raises(ScriptError):
        with scopes.transaction():
            scopes.set_global("gold", 0)
            scopes.increment_visits("cave")
            scopes.clear_ephemeral()
            scopes.run("missing_name + 1", "cave")

    assert scopes.get_global("gold") == 10
    assert scopes.visit_count("cave") == 0
    assert scopes.get_ephemeral("echo") == "drip"


def test_failed_evaluation_does_not_leak_ephemeral_changes() -> None:
    scopes = make_scopes("cave")
    scopes.run("def poke():\n    t.x = 1\n    return missing", None)

    with pytest.raises(ScriptError):
        scopes.evaluate("poke()", "cave")

    assert scopes.get_ephemeral("x") is None


@pytest.mark.parametrize("code", ["s = {}", "t = {}", "s = {'torches': 3}"])
def test_replacing_a_scope_mapping_is_rejected(code: str) -> None:
    scopes = make_scopes("cave")
    scopes.set_section_var("cave", "torches", 3)

    with pytest.raises(ScriptError):
        scopes.run(code, "cave")

    assert scopes.section_vars("cave") == {"torches": 3}


@pytest.mark.parametrize("code", ["visits = true", "visits = 1.0", "section_id = nil"])
def test_read_only_values_reject_lookalike_reassignment(code: str) -> None:
    scopes = make_scopes("cave")
    scopes.increment_visits("cave")

    with pytest.raises(ScriptError):
        scopes.run(code, "cave")


def test_section_scope_is_unbound_outside_a_section() -> None:
    scopes = make_scopes("cave")

    with pytest.raises(ScriptError):
        scopes.run("s.x = 1", None)
    with pytest.raises(ScriptError):
        scopes.run("s = {}", None)
    with pytest.raises(ScriptError):
        scopes.evaluate("s.x", None)

    assert scopes.run("t.x = 1\nreturn t.x", None).value == 1
    assert scopes.snapshot_state() == {"_sections": {}}

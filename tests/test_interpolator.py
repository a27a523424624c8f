import logging

from codex.services.interpolator import Interpolator
from tests.helpers.story_fixtures import make_scopes


def _interpolator(**globals_):
    scopes = make_scopes("start", "cave")
    for name, value in globals_.items():
        scopes.set_global(name, value)
    return scopes, Interpolator(scopes)


def test_placeholders_are_replaced_with_values() -> None:
    _, interpolator = _interpolator(gold=10, name="Ada")

    assert interpolator.render("{name} has {gold} gold.", "start") == "Ada has 10 gold."


def test_expressions_and_native_text() -> None:
    _, interpolator = _interpolator(gold=10, has_lamp=False, inventory=["lamp", "rope"])

    assert interpolator.render("{gold * 2}", "start") == "20"
    assert interpolator.render("{has_lamp}", "start") == "false"
    assert interpolator.render("{missing_value if false else nil}", "start") == "nil"
    assert interpolator.render("{inventory}", "start") == "[lamp, rope]"


def test_text_without_placeholders_is_unchanged() -> None:
    _, interpolator = _interpolator()

    assert interpolator.render("Plain text.", "start") == "Plain text."
    assert interpolator.render("", "start") == ""


def test_section_and_ephemeral_tiers_are_visible() -> None:
    scopes, interpolator = _interpolator()
    scopes.set_section_var("cave", "torches", 2)
    scopes.set_ephemeral("echo", "drip")

    assert interpolator.render("{s.torches} torches, {t.echo}", "cave") == "2 torches, drip"
    assert interpolator.render("{s.torches}", "start") == "nil"


def test_escaped_braces_are_literal() -> None:
    _, interpolator = _interpolator(gold=1)

    assert interpolator.render("{{gold}} is {gold}", "start") == "{gold} is 1"


def test_nested_braces_and_quotes_inside_expressions() -> None:
    _, interpolator = _interpolator()

    assert interpolator.render('{ {"a": 1}["a"] }', "start") == "1"
    assert interpolator.render("{'}' + 'x'}", "start") == "}x"


def test_unterminated_and_empty_placeholders_are_kept() -> None:
    _, interpolator = _interpolator()

    assert interpolator.render("open { brace", "start") == "open { brace"
    assert interpolator.render("empty {} here", "start") == "empty {} here"


def test_failed_placeholder_renders_marker_and_keeps_going(caplog) -> None:
    _, interpolator = _interpolator(gold=3)

    with caplog.at_level(logging.WARNING):
        text = interpolator.render("{ 1 / 0 } then {gold}", "start")

    assert text == "[error: 1 / 0] then 3"
    assert "1 / 0" in caplog.text


def test_rendering_does_not_persist_ephemeral_writes_on_failure() -> None:
    scopes, interpolator = _interpolator()
    scopes.run("def noisy():\n    t.seen = true\n    return 1 / 0", None)

    interpolator.render("{noisy()}", "start")

    assert scopes.get_ephemeral("seen") is None


def test_failed_placeholder_rolls_back_global_changes() -> None:
    scopes, interpolator = _interpolator(n=0)
    scopes.run("def bump():\n    global n\n    n = n + 1\n    return 1 / 0", None)

    text = interpolator.render("{bump()} and {n}", "start")

    assert text == "[error: bump()] and 0"
    assert scopes.get_global("n") == 0


def test_stray_brace_does_not_hide_later_placeholders() -> None:
    _, interpolator = _interpolator(gold=10)

    assert interpolator.render("a { b {gold}", "start") == "a { b 10"
    assert interpolator.render("it's { here: {gold} gold", "start") == "it's { here: 10 gold"

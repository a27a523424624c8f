import json

import pytest

from codex.data import DefinitionError, get_stories_path
from codex.services import MissingOptionError, MissingSectionError, ScriptError, Story, UnknownEventError
from tests.helpers.story_fixtures import make_story


def _cave(seed: int = 3) -> Story:
    return Story.load(get_stories_path() / "cave.yaml", seed=seed)


def _option_ids(view) -> list[str]:
    return [option.option_id for option in view.options]


SHOP = """
    title: Shop
    vars:
      gold: 10
    sections:
      start:
        text: You have {gold} gold.
        options:
          buy:
            text: Buy a trinket ({gold} gold left)
            if: gold >= 5
            run: gold = gold - 5
            notify: Bought. {gold} gold left.
          out: [Leave, street]
      street:
        text: Busy street.
        options:
          again: [Start over, restart]
"""


def test_start_renders_entry_section() -> None:
    story = make_story(SHOP)

    view = story.start()

    assert view.section_id == "start"
    assert view.title == "Start"
    assert view.text == "You have 10 gold."
    assert view.visits == 1
    assert [(option.option_id, option.text) for option in view.options] == [
        ("buy", "Buy a trinket (10 gold left)"),
        ("out", "Leave"),
    ]


def test_condition_guard_spends_down_and_then_hides_option() -> None:
    story = make_story(SHOP)
    story.start()

    first = story.choose("buy")
    second = story.choose("buy")

    assert first.result.notify_message == "Bought. 5 gold left."
    assert first.navigated is False
    assert second.result.notify_message == "Bought. 0 gold left."
    assert _option_ids(second.view) == ["out"]
    assert story.scopes.get_global("gold") == 0
    with pytest.raises(MissingOptionError):
        story.choose("buy")


def test_staying_in_place_does_not_revisit() -> None:
    story = make_story(SHOP)
    story.start()

    choice = story.choose("buy")

    assert choice.view.visits == 1
    assert choice.view.text == "You have 10 gold."


def test_restart_discards_state_and_re_enters_start() -> None:
    story = make_story(SHOP)
    story.start()
    story.choose("buy")
    story.choose("out")

    choice = story.choose("again")

    assert choice.navigated is True
    assert choice.view.section_id == "start"
    assert choice.view.visits == 1
    assert story.scopes.get_global("gold") == 10
    assert story.get_state() == {"gold": 10, "_sections": {"start": {"__visits__": 1}}}


def test_first_and_not_first_options_in_sample_story() -> None:
    story = _cave()

    first = story.start()
    story.choose("enter_first")
    back = story.choose("leave")

    assert _option_ids(first) == ["enter_first", "buy_lamp"]
    assert back.view.visits == 2
    assert _option_ids(back.view) == ["enter_again", "buy_lamp"]


def test_sample_story_playthrough() -> None:
    story = _cave()
    story.start()

    bought = story.choose("buy_lamp")
    entrance = story.choose("enter_first")

    assert bought.result.confirm_message == "Spend 5 gold on a lamp?"
    assert bought.result.notify_message == "The old man hands you a lamp. You have 5 gold left."
    assert story.scopes.get_global("inventory") == ["lamp"]
    assert entrance.view.title == "Cave Entrance"
    assert "drip... drip..." in entrance.view.text
    assert "A lamp lights the walls." in entrance.view.text
    assert _option_ids(entrance.view) == ["look", "deeper", "shout", "leave"]

    shouted = story.choose("shout")

    assert shouted.result.notify_message == "Bats burst from the ceiling! Health is now 2."
    assert _option_ids(shouted.view) == ["look", "rest", "deeper", "leave"]
    assert story.scopes.get_section_var("entrance", "bats_disturbed") is True

    looked = story.choose("look")

    assert looked.navigated is True
    assert looked.view.section_id == "entrance"
    assert looked.view.visits == 2

    tunnel = story.choose("deeper")

    assert tunnel.view.title == "Tunnel"
    assert "You have been here 1 time(s)." in tunnel.view.text


def test_template_options_are_shared_but_once_state_is_per_section() -> None:
    story = make_story(
        """
        templates:
          common:
            tip:
              text: Tip the bard
              flags: [once]
        sections:
          start:
            templates: [common]
            options:
              go: [Go, hall]
          hall:
            templates: common
            options:
              back: [Back, start]
        """
    )
    story.start()

    story.choose("tip")
    hall = story.choose("go")

    assert _option_ids(hall.view) == ["tip", "back"]
    assert _option_ids(story.choose("back").view) == ["go"]


def test_once_consumption_survives_state_round_trip() -> None:
    story = _cave()
    story.start()
    story.choose("enter_first")
    story.choose("shout")
    state = json.loads(json.dumps(story.get_state()))

    resumed = _cave()
    resumed.set_state(state)
    view = resumed.start("entrance")

    assert "shout" not in _option_ids(view)
    assert view.visits == 2
    assert resumed.scopes.get_global("health") == 2


def test_functions_from_init_survive_state_restore() -> None:
    story = _cave()
    story.set_state({"gold": 1, "health": 1})

    view = story.start()

    assert "You are bruised and carry 1 gold." in view.text


def test_navigation_precedence() -> None:
    story = make_story(
        """
        vars:
          hook_target: ""
        hooks:
          post_option: |
            if hook_target:
                goto_section = hook_target
        sections:
          start:
            options:
              plain: [Plain, a]
              scripted:
                text: Scripted
                goto: a
                run: goto_section = "b"
          a:
            text: A
          b:
            text: B
          c:
            text: C
        """
    )
    story.start()

    assert story.execute_option("plain").next_section_id == "a"
    scripted = story.execute_option("scripted")
    assert scripted.next_section_id == "b"
    assert scripted.navigation_override == "b"

    story.scopes.set_global("hook_target", "c")
    assert story.execute_option("scripted").next_section_id == "c"
    assert story.current_section_id == "start"


def test_post_option_hook_can_end_the_story() -> None:
    story = _cave()
    story.start()
    story.choose("enter_first")
    story.scopes.set_global("health", 1)

    choice = story.choose("shout")

    assert choice.view.section_id == "collapse"
    assert choice.view.options == []


def test_failing_hook_rolls_back_the_option() -> None:
    story = make_story(
        """
        vars:
          gold: 3
        hooks:
          post_option: missing_name
        sections:
          start:
            options:
              spend:
                text: Spend
                run: gold = 0
                flags: [once]
        """
    )
    story.start()

    with pytest.raises(ScriptError):
        story.choose("spend")

    assert story.scopes.get_global("gold") == 3
    assert _option_ids(story.current_view()) == ["spend"]


def test_section_redirects_are_followed() -> None:
    story = make_story(
        """
        sections:
          start:
            run: goto_section = "hall"
          hall:
            text: Hall
            run: |
              if visits > 1:
                  goto_section = "self"
        """
    )

    view = story.start()
    story.goto("hall")

    assert view.section_id == "hall"
    assert story.scopes.visit_count("start") == 1
    assert story.current_view().visits == 2


def test_redirect_loops_are_stopped() -> None:
    story = make_story(
        """
        sections:
          start:
            run: goto_section = "loop"
          loop:
            run: goto_section = "start"
        """
    )

    with pytest.raises(ScriptError, match="Too many redirects"):
        story.start()


def test_events_through_story() -> None:
    story = _cave()
    story.start()

    assert story.trigger("pray") == "You mumble a prayer to nobody in particular."
    assert story.trigger("pray", "Apollo") == "Apollo hears you. Health is now 4."
    assert story.trigger("wealth") == "You count 10 gold coins."
    assert story.event_ids == ["pray", "wealth"]
    with pytest.raises(UnknownEventError):
        story.trigger("dance")


def test_render_uses_current_section() -> None:
    story = _cave()
    story.start()
    story.choose("enter_first")

    assert story.render("{section_id}: {t.echo}") == "entrance: drip... drip..."


def test_navigation_errors() -> None:
    story = make_story(SHOP)

    with pytest.raises(MissingSectionError):
        story.current_view()
    with pytest.raises(MissingSectionError, match="nowhere"):
        story.goto("nowhere")
    story.start()
    with pytest.raises(MissingOptionError, match="fly"):
        story.execute_option("fly")


def test_invalid_code_is_rejected_at_load() -> None:
    with pytest.raises(DefinitionError, match="option 'bad'"):
        make_story(
            """
            sections:
              start:
                options:
                  bad:
                    text: Bad
                    if: gold >=
            """
        )


def test_failing_init_is_a_definition_error() -> None:
    with pytest.raises(DefinitionError, match="init"):
        make_story(
            """
            init: gold = 1 / 0
            sections:
              start:
                text: Hi
            """
        )


def test_unknown_template_is_a_definition_error() -> None:
    with pytest.raises(DefinitionError, match="unknown template"):
        make_story(
            """
            sections:
              start:
                templates: [nope]
            """
        )


def test_failing_condition_and_placeholder_leave_no_trace() -> None:
    story = make_story(
        """
        vars:
          n: 0
        init: |
          def bump():
              global n
              n = n + 1
              return 1 / 0
        sections:
          start:
            text: "Counter {bump()} {n}"
            options:
              risky:
                text: Risky
                if: bump()
              safe: [Safe, start]
        """
    )

    view = story.start()

    assert view.text == "Counter [error: bump()] 0"
    assert _option_ids(view) == ["safe"]
    assert story.scopes.get_global("n") == 0


def test_section_scope_is_not_available_to_init() -> None:
    with pytest.raises(DefinitionError, match="init"):
        make_story(
            """
            init: s.x = 1
            sections:
              start:
                text: "{s.x}"
            """
        )


def test_event_before_start_cannot_touch_section_scope() -> None:
    story = make_story(
        """
        events:
          mark: s.marked = true
        sections:
          start:
            text: Hi
        """
    )

    with pytest.raises(ScriptError):
        story.trigger("mark")

    story.start()
    assert story.scopes.get_section_var("start", "marked") is None


def test_visible_options_match_the_current_view() -> None:
    story = make_story(SHOP)
    story.start()
    story.choose("buy")
    story.choose("buy")

    assert [option.id for option in story.visible_options()] == ["out"]
    assert [option.id for option in story.visible_options()] == _option_ids(story.current_view())

"""Console-driven play loop for Codex stories."""
from __future__ import annotations

import argparse
import shlex
from typing import List, Sequence

import yaml

from codex.core.types import RESTART_TARGET, Value
from codex.data import DataError, resolve_story_path
from codex.logging_config import configure_logging
from codex.presentation.cli import config, render
from codex.presentation.cli.save_slots import SaveSlotStore
from codex.services import (
    MissingOptionError,
    MissingSectionError,
    SaveLoadError,
    SaveService,
    ScriptError,
    SectionView,
    Story,
    UnknownEventError,
)

_HELP = (
    "Enter an option number to choose it.",
    "e <event> [args...]  trigger a story event",
    "s <slot>             save to a slot",
    "l <slot>             load from a slot",
    "slots                list save slots",
    "r                    restart the story",
    "q                    quit",
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="codex", description="Play a Codex story in the terminal.")
    parser.add_argument("story", nargs="?", help="Story file path or name in the stories directory.")
    parser.add_argument("--section", default=None, help="Section id to start or resume at.")
    parser.add_argument("--slot", type=int, default=None, help="Resume from a save slot.")
    parser.add_argument("--seed", type=int, default=None, help="Seed for the dice helpers.")
    parser.add_argument("--log-level", default=None, help="Logging level (default from CODEX_LOG_LEVEL).")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Start the interactive CLI session."""
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    settings = config.load_config()
    story_path = resolve_story_path(args.story, settings["stories_dir"])
    try:
        story = Story.load(story_path, seed=args.seed)
    except DataError as exc:
        print(f"Unable to load story: {exc}")
        return 1

    store = SaveSlotStore(story_path.stem, slot_count=settings["slot_count"])
    save_service = SaveService()
    print(f"=== {story.title} ===")
    try:
        view = _open_session(story, store, save_service, args.slot, args.section)
    except (MissingSectionError, SaveLoadError, ScriptError, OSError, ValueError) as exc:
        print(f"Unable to start story: {exc}")
        return 1
    _run_story_loop(story, store, save_service, view)
    print("Goodbye!")
    return 0


def _open_session(
    story: Story,
    store: SaveSlotStore,
    save_service: SaveService,
    slot: int | None,
    section_id: str | None,
) -> SectionView:
    if slot is not None:
        resume_at = save_service.deserialize(story, save_service.from_bytes(store.read_slot(slot)))
        return story.start(section_id or resume_at or "start")
    return story.start(section_id or "start")


def _run_story_loop(story: Story, store: SaveSlotStore, save_service: SaveService, view: SectionView) -> None:
    render.render_section(view)
    while True:
        raw = input("\n> ").strip()
        if not raw:
            continue
        command, _, rest = raw.partition(" ")
        try:
            if command == "q":
                return
            if command in ("?", "help"):
                render.render_bullet_lines(_HELP)
                continue
            if command == "r":
                view = story.goto(RESTART_TARGET)
            elif command == "e":
                _trigger_event(story, rest)
                view = story.current_view()
            elif command == "s":
                store.write_slot(_parse_slot(rest), save_service.to_bytes(save_service.serialize(story)))
                print("Saved.")
                continue
            elif command == "l":
                payload = save_service.from_bytes(store.read_slot(_parse_slot(rest)))
                resume_at = save_service.deserialize(story, payload)
                view = story.goto(resume_at or "start")
            elif command == "slots":
                render.render_slots(store.list_slots())
                continue
            else:
                view = _take_option(story, view, command)
                if view is None:
                    continue
        except (MissingOptionError, MissingSectionError, UnknownEventError) as exc:
            print(exc)
            continue
        except (ScriptError, SaveLoadError) as exc:
            print(f"Something went wrong: {exc}")
            continue
        except (OSError, ValueError) as exc:
            print(f"Invalid command: {exc}")
            continue
        render.render_section(view)


def _take_option(story: Story, view: SectionView, raw_index: str) -> SectionView | None:
    try:
        index = int(raw_index) - 1
    except ValueError:
        print("Please enter an option number, or ? for help.")
        return None
    if not 0 <= index < len(view.options):
        print(f"Please enter a value between 1 and {len(view.options)}.")
        return None
    option_id = view.options[index].option_id
    option = story.get_section(view.section_id).options[option_id]
    if option.confirm and not _confirm(story.render(option.confirm)):
        return None

    result = story.execute_option(option_id)
    next_view = story.goto(result.next_section_id) if result.next_section_id else story.current_view()
    if result.notify_message:
        render.render_notification(result.notify_message)
    return next_view


def _trigger_event(story: Story, rest: str) -> None:
    tokens = shlex.split(rest)
    if not tokens:
        print(f"Events: {', '.join(story.event_ids) or 'none'}")
        return
    event_id, *raw_args = tokens
    if not _confirm(f"Trigger '{event_id}'? Are you sure?"):
        return
    message = story.trigger(event_id, *_parse_args(raw_args))
    if message:
        render.render_notification(message)


def _parse_args(raw_args: List[str]) -> List[Value]:
    """Coerce CLI tokens into script values (numbers, booleans, strings).

    Only ``true`` and ``false`` become booleans; YAML's ``yes``/``no``/``on``/``off``
    stay plain words.
    """
    values: List[Value] = []
    for token in raw_args:
        try:
            value = yaml.safe_load(token)
        except yaml.YAMLError:
            value = token
        if isinstance(value, bool) and token.lower() not in ("true", "false"):
            value = token
        values.append(value if isinstance(value, (bool, int, float, str)) else token)
    return values


def _parse_slot(raw: str) -> int:
    return int(raw.strip() or "1")


def _confirm(message: str) -> bool:
    answer = input(f"{message} [y/N] ").strip().lower()
    return answer in ("y", "yes")

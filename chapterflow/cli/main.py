"""
ChapterFlow CLI
===============
Terminal command surface for reading, prefetching, narrating and cache
operations.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Callable, Optional, TextIO

from chapterflow.app.config import AppConfig
from chapterflow.app.controller import ReaderCallbacks, ReaderController
from chapterflow.app.events import AudioReadyEvent, PrefetchProgressEvent
from chapterflow.errors import ChapterFlowError, user_message


def build_parser() -> argparse.ArgumentParser:
    """Create the root CLI parser."""
    parser = argparse.ArgumentParser(prog="chapterflow", description="ChapterFlow novel reader backend")
    parser.add_argument("--data-dir", default="data", help="Application data directory (default: data)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # read
    read_parser = subparsers.add_parser("read", help="Print a chapter in the given mode")
    read_parser.add_argument("book_id", help="Book identifier")
    read_parser.add_argument("chapter", type=int, help="Chapter number (1-based)")
    read_parser.add_argument("--mode", default="raw", help="raw, translate, summary or a custom action key")
    read_parser.add_argument("--prefetch", action="store_true", help="Prefetch the following chapters afterwards")
    read_parser.set_defaults(handler=handle_read)

    # prefetch
    prefetch_parser = subparsers.add_parser("prefetch", help="Process the chapters after a given chapter")
    prefetch_parser.add_argument("book_id", help="Book identifier")
    prefetch_parser.add_argument("from_chapter", type=int, help="Chapter currently being read")
    prefetch_parser.add_argument("--mode", default="translate", help="Processing mode (default: translate)")
    prefetch_parser.add_argument("--count", type=int, help="Window size (default: PREFETCH_COUNT setting)")
    prefetch_parser.add_argument("--total", type=int, help="Total chapters (default: counted from the library)")
    prefetch_parser.set_defaults(handler=handle_prefetch)

    # speak
    speak_parser = subparsers.add_parser("speak", help="Synthesize chapter audio sentence by sentence")
    speak_parser.add_argument("book_id", help="Book identifier")
    speak_parser.add_argument("chapter", type=int, help="Chapter number (1-based)")
    speak_parser.add_argument("--mode", default="raw", help="Content mode to narrate (default: raw)")
    speak_parser.add_argument("--voice", help="Voice ID (default: TTS_VOICE setting)")
    speak_parser.set_defaults(handler=handle_speak)

    # autogen
    autogen_parser = subparsers.add_parser("autogen", help="Whole-book summary + audio generation")
    autogen_subparsers = autogen_parser.add_subparsers(dest="autogen_command", required=True)

    autogen_start = autogen_subparsers.add_parser("start", help="Start or resume a book")
    autogen_start.add_argument("book_id", help="Book identifier")
    autogen_start.add_argument("--total", type=int, help="Total chapters (default: counted from the library)")
    autogen_start.add_argument("--voice", help="Voice ID")
    autogen_start.add_argument("--restart", action="store_true", help="Ignore saved progress")
    autogen_start.set_defaults(handler=handle_autogen_start)

    autogen_status = autogen_subparsers.add_parser("status", help="Show saved progress")
    autogen_status.add_argument("book_id", help="Book identifier")
    autogen_status.set_defaults(handler=handle_autogen_status)

    autogen_clear = autogen_subparsers.add_parser("clear", help="Delete saved progress")
    autogen_clear.add_argument("book_id", nargs="?", help="Book identifier (all books if omitted)")
    autogen_clear.set_defaults(handler=handle_autogen_clear)

    # cache
    cache_parser = subparsers.add_parser("cache", help="Chapter and audio cache operations")
    cache_subparsers = cache_parser.add_subparsers(dest="cache_command", required=True)

    cache_stats = cache_subparsers.add_parser("stats", help="Show cache counters")
    cache_stats.add_argument("--book", help="Break down one book by mode")
    cache_stats.set_defaults(handler=handle_cache_stats)

    cache_clear = cache_subparsers.add_parser("clear", help="Delete cached chapters")
    cache_clear.add_argument("--book", help="Limit to one book")
    cache_clear.add_argument("--chapter", type=int, help="Limit to one chapter (requires --book)")
    cache_clear.add_argument("--mode", help="Limit to one mode")
    cache_clear.set_defaults(handler=handle_cache_clear)

    cache_audio = cache_subparsers.add_parser("clear-audio", help="Delete every cached audio file")
    cache_audio.set_defaults(handler=handle_cache_clear_audio)

    # voices
    voices_parser = subparsers.add_parser("voices", help="List available TTS voices")
    voices_parser.set_defaults(handler=handle_voices)

    # settings
    settings_parser = subparsers.add_parser("settings", help="Read or change user settings")
    settings_subparsers = settings_parser.add_subparsers(dest="settings_command", required=True)

    settings_get = settings_subparsers.add_parser("get", help="Show one key or every key")
    settings_get.add_argument("key", nargs="?", help="Setting key, e.g. GEMINI_API_KEY")
    settings_get.set_defaults(handler=handle_settings_get)

    settings_set = settings_subparsers.add_parser("set", help="Persist one key")
    settings_set.add_argument("key", help="Setting key")
    settings_set.add_argument("value", help="New value")
    settings_set.set_defaults(handler=handle_settings_set)

    return parser


SECRET_KEYS = {"GEMINI_API_KEY", "CAPCUT_TOKEN"}


def _print(msg: str, out: TextIO) -> None:
    out.write(msg + "\n")
    out.flush()


def _print_error(exc: ChapterFlowError, controller: ReaderController, out: TextIO) -> None:
    locale = controller.get_settings().get("LANGUAGE") or "vi"
    _print(f"error: {exc}", out)
    _print(user_message(exc, locale), out)


def _mask(key: str, value) -> str:
    text = str(value)
    if key in SECRET_KEYS and len(text) > 8:
        return text[:4] + "..." + text[-4:]
    return text


def handle_read(args: argparse.Namespace, controller: ReaderController, out: TextIO) -> int:
    """Print a chapter, then optionally warm the next ones."""
    try:
        content = asyncio.run(controller.get_chapter(args.book_id, args.chapter, args.mode))
    except ChapterFlowError as exc:
        _print_error(exc, controller, out)
        return 1

    _print(content, out)
    if args.prefetch:
        report = asyncio.run(controller.prefetch(args.book_id, args.chapter, args.mode))
        _print(f"prefetched: {len(report.completed)} new, {len(report.skipped)} cached", out)
    return 0


def handle_prefetch(args: argparse.Namespace, controller: ReaderController, out: TextIO) -> int:
    """Run one prefetch window and report each chapter as it settles."""

    def on_progress(event: PrefetchProgressEvent) -> None:
        suffix = f" ({event.message})" if event.message else ""
        _print(f"  [{event.done}/{event.total}] chapter {event.chapter_number}: {event.status.value}{suffix}", out)

    unsubscribe = controller.subscribe(ReaderCallbacks(on_prefetch_progress=on_progress))
    try:
        report = asyncio.run(controller.prefetch(
            args.book_id,
            args.from_chapter,
            args.mode,
            total_chapters=args.total,
            prefetch_count=args.count,
        ))
    except KeyboardInterrupt:
        controller.abort_prefetch()
        _print("prefetch aborted", out)
        return 130
    finally:
        unsubscribe()

    if not report.window:
        _print("nothing to prefetch", out)
        return 0

    _print(
        f"window {report.window[0]}-{report.window[-1]}: "
        f"completed={len(report.completed)} cached={len(report.skipped)} failed={len(report.failed)}",
        out,
    )
    if report.aborted:
        _print(f"aborted: {report.abort_reason}", out)
        return 1
    return 0 if not report.failed else 1


def handle_speak(args: argparse.Namespace, controller: ReaderController, out: TextIO) -> int:
    """Synthesize chapter audio and print each file as it becomes playable."""

    def on_audio_ready(event: AudioReadyEvent) -> None:
        tag = "cached" if event.from_cache else "new"
        _print(f"  [{event.index + 1}] {event.file_path} ({tag})", out)

    try:
        files = asyncio.run(controller.speak_chapter(
            args.book_id, args.chapter, args.mode, voice=args.voice, on_audio_ready=on_audio_ready
        ))
    except ChapterFlowError as exc:
        _print_error(exc, controller, out)
        return 1
    except KeyboardInterrupt:
        controller.stop_speaking(args.book_id, args.chapter, args.mode)
        _print("speech stopped", out)
        return 130

    if not files:
        _print("no audio generated", out)
        return 1
    _print(f"audio files: {len(files)}", out)
    return 0


def handle_autogen_start(args: argparse.Namespace, controller: ReaderController, out: TextIO) -> int:
    """Run auto-generate in the foreground; Ctrl+C pauses it."""

    def on_event(event) -> None:
        chapter = f" chapter {event.chapter_number}" if event.chapter_number else ""
        suffix = f": {event.message}" if event.message else ""
        _print(f"  [{event.completed}/{event.total}] {event.kind.value}{chapter}{suffix}", out)

    unsubscribe = controller.subscribe(ReaderCallbacks(on_autogen=on_event))
    try:
        progress = asyncio.run(controller.start_auto_generate(
            args.book_id,
            total_chapters=args.total,
            voice=args.voice,
            resume=not args.restart,
        ))
    except KeyboardInterrupt:
        asyncio.run(controller.stop_auto_generate(args.book_id))
        _print("auto-generate paused; run start again to resume", out)
        return 130
    finally:
        unsubscribe()

    if progress is None:
        _print("auto-generate did not start", out)
        return 1
    if progress.is_complete:
        _print(f"auto-generate completed: {progress.total_chapters} chapters", out)
        return 0
    _print(
        f"auto-generate stopped at chapter {progress.current_chapter} "
        f"({progress.progress_percentage}%)",
        out,
    )
    if progress.last_error:
        _print(f"last error: {progress.last_error}", out)
    return 1


def handle_autogen_status(args: argparse.Namespace, controller: ReaderController, out: TextIO) -> int:
    stats = asyncio.run(controller.auto_generate_stats(args.book_id))
    if stats is None:
        _print(f"no saved progress for {args.book_id}", out)
        return 0

    _print(
        f"{stats.book_id}: {stats.completed}/{stats.total} chapters ({stats.progress_percentage}%) "
        f"running={stats.is_running} resumable={stats.can_resume}",
        out,
    )
    if stats.current_chapter:
        _print(f"next chapter: {stats.current_chapter}", out)
    if stats.last_error:
        _print(f"last error: {stats.last_error}", out)
    return 0


def handle_autogen_clear(args: argparse.Namespace, controller: ReaderController, out: TextIO) -> int:
    removed = asyncio.run(controller.clear_auto_generate(args.book_id))
    _print(f"cleared {removed} progress record(s)", out)
    return 0


def handle_cache_stats(args: argparse.Namespace, controller: ReaderController, out: TextIO) -> int:
    """Show global counters, or one book's breakdown."""
    if args.book:
        stats = controller.get_book_cache_stats(args.book)
        _print(f"{stats.book_id}: chapters={stats.total_chapters} audio={stats.total_tts}", out)
        for mode, count in sorted(stats.chapters_by_mode.items()):
            _print(f"  - {mode}: {count}", out)
        return 0

    stats = controller.get_cache_stats()
    _print(
        f"cache stats: chapters={stats.total_chapters} audio={stats.total_tts} "
        f"pending_prefetch={stats.total_prefetch_pending}",
        out,
    )
    return 0


def handle_cache_clear(args: argparse.Namespace, controller: ReaderController, out: TextIO) -> int:
    if args.chapter is not None and not args.book:
        _print("error: --chapter requires --book", out)
        return 2

    if args.book and args.chapter is not None:
        removed = controller.clear_chapter(args.book, args.chapter, args.mode)
        _print(f"cleared {removed} cached chapter(s) for {args.book} chapter {args.chapter}", out)
    elif args.book:
        removed = controller.clear_book(args.book, args.mode)
        _print(f"cleared {removed} cached chapter(s) for {args.book}", out)
    else:
        controller.clear_all_cache()
        _print("cleared all cached chapters and audio", out)
    return 0


def handle_cache_clear_audio(args: argparse.Namespace, controller: ReaderController, out: TextIO) -> int:
    controller.clear_audio()
    _print("cleared audio cache", out)
    return 0


def handle_voices(args: argparse.Namespace, controller: ReaderController, out: TextIO) -> int:
    for voice in controller.get_available_voices():
        _print(f"- {voice['id']}: {voice['name']} ({voice['language']}, {voice['gender']})", out)
    return 0


def handle_settings_get(args: argparse.Namespace, controller: ReaderController, out: TextIO) -> int:
    settings = controller.get_settings()
    if args.key:
        if args.key not in settings:
            _print(f"{args.key} is not set", out)
            return 1
        _print(f"{args.key}={_mask(args.key, settings[args.key])}", out)
        return 0

    for key in sorted(settings):
        _print(f"{key}={_mask(key, settings[key])}", out)
    return 0


def handle_settings_set(args: argparse.Namespace, controller: ReaderController, out: TextIO) -> int:
    value = args.value
    if args.key == "AI_PROCESS_ACTIONS":
        try:
            json.loads(value)
        except json.JSONDecodeError as exc:
            _print(f"error: AI_PROCESS_ACTIONS must be a JSON list: {exc}", out)
            return 1

    controller.update_settings({args.key: value})
    _print(f"saved {args.key}", out)
    return 0


def _default_controller(config: AppConfig) -> ReaderController:
    return ReaderController(config)


def main(
    argv: Optional[list[str]] = None,
    controller_factory: Callable[[AppConfig], ReaderController] = _default_controller,
    out: TextIO = sys.stdout,
) -> int:
    """
    CLI entrypoint.

    Args:
        argv: Optional argv override for testing.
        controller_factory: Dependency-injection hook for tests.
        out: Output stream.

    Returns:
        Process exit code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    handler = getattr(args, "handler", None)
    if handler is None:
        parser.print_help(file=out)
        return 2

    controller = controller_factory(AppConfig(data_dir=Path(args.data_dir)))
    try:
        return int(handler(args, controller, out))
    finally:
        controller.cleanup()


if __name__ == "__main__":
    raise SystemExit(main())

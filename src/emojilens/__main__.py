"""CLI entry-point: ``python -m emojilens interpret`` / ``python -m emojilens quota``."""

from __future__ import annotations

import argparse
import logging
import sys

from emojilens import config
from emojilens.llm import METRICS_MARKER, build_service
from emojilens.models import Platform, RelationshipContext, SessionState, StreamingSession
from emojilens.quota import QuotaGovernor, format_elapsed
from emojilens.session import ADVISORY_MESSAGE, InterpretationSession
from emojilens.store import SqliteStore
from emojilens.tones import TONE_INFO

logger = logging.getLogger(__name__)


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _governor() -> QuotaGovernor:
    return QuotaGovernor(SqliteStore(config.STATE_DB), max_uses=config.MAX_USES)


class _StreamPrinter:
    """Echo streamed prose to stdout, holding back anything that may be the trailer."""

    def __init__(self) -> None:
        self._printed = 0
        self._advised = False

    def __call__(self, snapshot: StreamingSession) -> None:
        if snapshot.advisory and not self._advised:
            self._advised = True
            print(f"\n({ADVISORY_MESSAGE})", file=sys.stderr)
        text = snapshot.accumulated_text
        if snapshot.state is SessionState.STREAMING:
            idx = text.find(METRICS_MARKER)
            visible = len(text) - len(METRICS_MARKER) if idx == -1 else idx
        else:
            idx = text.find(METRICS_MARKER)
            visible = len(text) if idx == -1 else idx
        if visible > self._printed:
            sys.stdout.write(text[self._printed:visible])
            sys.stdout.flush()
            self._printed = visible


def _interpret(args: argparse.Namespace) -> int:
    for warning in config.config_warnings():
        logger.warning(warning)

    service = build_service(
        provider=config.LLM_PROVIDER,
        api_key=config.LLM_API_KEY,
        model=config.LLM_MODEL,
        service_url=config.SERVICE_URL,
        enabled=config.INTERPRETER_ENABLED,
        timeout=config.TIMEOUT_SECONDS,
    )
    session = InterpretationSession(
        service,
        _governor(),
        streaming=not args.no_stream,
        advisory_after=config.ADVISORY_SECONDS,
        timeout_after=config.TIMEOUT_SECONDS,
        on_update=_StreamPrinter(),
    )

    raw = {"message": args.message, "platform": args.platform, "context": args.context}
    try:
        snapshot = session.submit(raw)
    except KeyboardInterrupt:
        snapshot = session.cancel()
    print()

    if snapshot.state is SessionState.CANCELLED:
        logger.info("Cancelled after %s.", format_elapsed(session.elapsed()))
        return 130

    if snapshot.error is not None:
        err = snapshot.error
        print(f"Error: {err.message}", file=sys.stderr)
        for field, messages in err.field_errors.items():
            for message in messages:
                print(f"  {field}: {message}", file=sys.stderr)
        if err.retryable:
            print("This error is temporary; run the command again to retry.", file=sys.stderr)
        return 1

    if session.emojis:
        print(f"Emojis: {' '.join(session.emojis)}")

    result = session.result
    if result is not None:
        m = result.metrics
        print(
            f"Tone: {m.overall_tone.value} | sarcasm {m.sarcasm_probability:.0f}% | "
            f"passive-aggression {m.passive_aggression_probability:.0f}% | "
            f"confidence {m.confidence:.0f}%"
        )
        for flag in result.red_flags:
            print(f"Red flag [{flag.severity.value}] {flag.type}: {flag.description}")

    if session.suggestions:
        print("\nSuggested response tones:")
        for s in session.suggestions:
            info = TONE_INFO[s.tone]
            print(f"  {info.icon} {info.label} ({s.confidence}%) - {s.reasoning}")
            for example in s.examples:
                print(f"      • {example}")

    quota = session.quota
    print(
        f"\n{quota.remaining}/{quota.max_uses} free interpretations left today "
        f"({format_elapsed(session.elapsed())})."
    )
    return 0


def _quota(args: argparse.Namespace) -> int:
    governor = _governor()
    if args.clear:
        governor.clear()
        logger.info("Cleared today's usage.")
    snapshot = governor.snapshot()
    print(f"{snapshot.remaining}/{snapshot.max_uses} free interpretations left today.")
    if snapshot.remaining == 0:
        print(f"Resets in {governor.reset_in()}.")
    return 0


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="emojilens",
        description="Interpret the tone behind emoji-laden messages.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")
    sub = parser.add_subparsers(dest="command")

    # ── interpret ─────────────────────────────────────────────────────
    interpret_parser = sub.add_parser("interpret", help="Interpret one message.")
    interpret_parser.add_argument("message", help="Message text (10-1000 chars, with an emoji).")
    interpret_parser.add_argument(
        "--platform",
        choices=[p.value for p in Platform],
        default=Platform.OTHER.value,
        help="Where the message was sent (default: OTHER).",
    )
    interpret_parser.add_argument(
        "--context",
        choices=[c.value for c in RelationshipContext],
        default=RelationshipContext.FRIEND.value,
        help="Who sent it (default: FRIEND).",
    )
    interpret_parser.add_argument(
        "--no-stream",
        action="store_true",
        help="Request a single JSON result instead of streamed text.",
    )

    # ── quota ─────────────────────────────────────────────────────────
    quota_parser = sub.add_parser("quota", help="Show today's remaining interpretations.")
    quota_parser.add_argument("--clear", action="store_true", help="Forget today's usage.")

    args = parser.parse_args(argv)
    _setup_logging(args.verbose)

    if args.command == "interpret":
        sys.exit(_interpret(args))
    elif args.command == "quota":
        sys.exit(_quota(args))
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()

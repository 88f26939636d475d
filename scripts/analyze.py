#!/usr/bin/env python3
"""CLI: Analyze an image (or an extracted video frame) and print the overlay."""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from pathlib import Path

# Ensure the package is importable when running as a script
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from tactiview import config
from tactiview.agent.events import CompletionEvent, ProgressChannel, ToolCallEvent
from tactiview.agent.loop import create_agent_loop
from tactiview.agent.profiles import DEFAULT_PROFILE, agentic_profiles
from tactiview.agent.single_shot import create_single_shot_analyzer
from tactiview.media import MediaPayload, is_video


def _print_event(event) -> None:
    if isinstance(event, ToolCallEvent):
        inv = event.invocation
        print(f"  [{event.iteration}] {inv.id} ({inv.stage or '-'}): {inv.thinking}")
        for name, count in inv.delta.counts().items():
            if count:
                print(f"        +{count} {name}")
    elif isinstance(event, CompletionEvent):
        print("  [done] summary received")


def main() -> None:
    parser = argparse.ArgumentParser(description="Tactical overlay analysis of an image")
    parser.add_argument("image", type=Path, help="Image file (or a frame exported from a video)")
    parser.add_argument(
        "--prompt", default="Analyze this play.",
        help="Request sent with the image",
    )
    parser.add_argument(
        "--mode", choices=["agentic", "single"], default="agentic",
        help="agentic: tool-calling loop (default); single: one reply with fenced diagrams",
    )
    parser.add_argument(
        "--profile", choices=agentic_profiles(), default=DEFAULT_PROFILE,
        help="Prompt profile for agentic mode",
    )
    parser.add_argument("--max-iterations", type=int, default=None)
    parser.add_argument("--min-tool-calls", type=int, default=None)
    parser.add_argument("--json", action="store_true", help="Print the result as JSON only")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else getattr(logging, config.LOG_LEVEL, logging.INFO),
        format="%(asctime)s %(levelname)-5s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
    )

    if not config.GEMINI_API_KEY:
        print("Error: GEMINI_API_KEY is not set. Set it in .env or the environment.", file=sys.stderr)
        sys.exit(1)
    if not args.image.is_file():
        print(f"Error: {args.image} is not a file.", file=sys.stderr)
        sys.exit(1)
    media = MediaPayload.from_path(args.image)
    if is_video(args.image, media.mime_type):
        print("Error: video files are not supported; export a frame first.", file=sys.stderr)
        sys.exit(1)

    t0 = time.perf_counter()
    if args.mode == "single":
        analyzer = create_single_shot_analyzer()
        result = analyzer.run(media, args.prompt)
        payload = result.to_dict()
    else:
        loop = create_agent_loop(
            args.profile,
            max_iterations=args.max_iterations,
            min_tool_calls=args.min_tool_calls,
        )
        channel = ProgressChannel(_print_event if not args.json else lambda event: None)
        try:
            result = loop.run(media, args.prompt, on_progress=channel)
        finally:
            channel.close(wait=True)
        payload = result.to_dict()
    elapsed = time.perf_counter() - t0

    if args.json:
        print(json.dumps(payload, indent=2))
        return

    print(f"\n{payload['text']}\n")
    if args.mode == "agentic":
        print(f"Outcome: {payload['outcome']} ({payload['iterations']} iterations, "
              f"{payload['tool_calls']} tool calls, {elapsed:.1f}s)")
        if payload["overlay"] is not None:
            print(json.dumps(payload["overlay"], indent=2))
    else:
        for viz in payload["visualizations"] or []:
            print(json.dumps(viz, indent=2))


if __name__ == "__main__":
    main()

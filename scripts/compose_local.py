#!/usr/bin/env python3
"""
Local composition CLI: renders a cut plan against a source video without
Redis or a database.

Stdout: JSON with the render state and every validated artifact.
Stderr: error message on failure (exit code 1, or 2 for configuration
errors such as an invalid cut plan or transition duration).

Usage::

    python scripts/compose_local.py \\
        --source    /path/to/source.mp4 \\
        --cut-plan  /path/to/cut_plan.json \\
        --out-dir   /tmp/renders \\
        --transitions --transition-ms 500
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

_WORKER_ROOT = Path(__file__).resolve().parents[1] / "worker"
if str(_WORKER_ROOT) not in sys.path:
    sys.path.insert(0, str(_WORKER_ROOT))

from cutstitch.config import get_settings
from cutstitch.tasks.composition import (
    CompositionError,
    compose,
    extract_keep_segments,
    parse_cut_plan,
)
from cutstitch.tasks.composition.errors import CATEGORY_CONFIGURATION

EXIT_FAILURE = 1
EXIT_CONFIGURATION = 2


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Render base cuts (and optional crossfades) from a cut plan."
    )
    parser.add_argument(
        "--source",
        type=Path,
        required=True,
        metavar="PATH",
        help="Source video with one video and one audio stream",
    )
    parser.add_argument(
        "--cut-plan",
        type=Path,
        required=True,
        metavar="PATH",
        help="Path to cut_plan.json",
    )
    parser.add_argument(
        "--out-dir",
        type=Path,
        required=True,
        metavar="PATH",
        help="Output directory for base_cuts.mp4 and with_transitions.mp4",
    )
    parser.add_argument(
        "--transitions",
        action="store_true",
        help="Also render the crossfaded artifact",
    )
    parser.add_argument(
        "--transition-ms",
        type=int,
        metavar="MS",
        help="Video crossfade duration in milliseconds",
    )
    parser.add_argument(
        "--audio-fade-ms",
        type=int,
        metavar="MS",
        help="Audio crossfade duration (defaults to --transition-ms)",
    )
    parser.add_argument(
        "--no-sync-check",
        action="store_true",
        help="Skip A/V drift measurement",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )

    overrides = {}
    if args.transition_ms is not None:
        overrides["transition_duration_ms"] = args.transition_ms
    if args.audio_fade_ms is not None:
        overrides["audio_fade_ms"] = args.audio_fade_ms
    if args.no_sync_check:
        overrides["sync_check_enabled"] = False

    config = get_settings().render_config(transitions_enabled=args.transitions or None)
    config = config.model_copy(update=overrides)

    try:
        if not args.cut_plan.is_file():
            raise FileNotFoundError(f"Cut plan not found: {args.cut_plan}")
        plan = parse_cut_plan(args.cut_plan.read_text(encoding="utf-8"))
        segments = extract_keep_segments(plan)

        result = compose(args.source, segments, config, args.out_dir)

        print(
            json.dumps(
                {
                    "state": result.state.value,
                    "artifacts": [a.model_dump() for a in result.artifacts],
                },
                indent=2,
            )
        )

    except CompositionError as exc:
        print(f"ERROR [{exc.error_type}]: {exc.message}", file=sys.stderr)
        sys.exit(EXIT_CONFIGURATION if exc.category == CATEGORY_CONFIGURATION else EXIT_FAILURE)
    except FileNotFoundError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        sys.exit(EXIT_CONFIGURATION)


if __name__ == "__main__":
    main()

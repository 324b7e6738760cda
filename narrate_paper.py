#!/usr/bin/env python3
"""
Paper narration CLI entry point.

Turns a research paper (local PDF or link) into a narrated audio track
plus time-indexed segment metadata, stored under an output directory.

Usage::

    python narrate_paper.py paper.pdf
    python narrate_paper.py https://arxiv.org/abs/1706.03762 out/
    python narrate_paper.py paper.pdf --source partition --output-wav
    python narrate_paper.py paper.pdf --detect-relevant --save-snapshots -v 2

Verbosity levels::

    -v 0   Quiet - warnings and errors only.
    -v 1   Normal - phase summaries and progress bars (default).
    -v 2   Debug - per-item decisions and retry detail.

``OPENAI_API_KEY`` is read from the environment or a ``.env`` file.
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from papernarrator.pipeline import EXTRACTION_SOURCES, NarrationPipeline, NarratorConfig
from papernarrator.run import RunDriver
from papernarrator.status import RunStatus
from papernarrator.storage import LocalBlobStore
from papernarrator.tts import DEFAULT_NARRATION_VOICE, DEFAULT_SUMMARY_VOICE, KOKORO_VOICES

logger = logging.getLogger("papernarrator")

# Mapping from --verbose integer to logging level
_VERBOSITY_MAP = {
    0: logging.WARNING,
    1: logging.INFO,
    2: logging.DEBUG,
}


# ------------------------------------------------------------------
# Argument parsing
# ------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    """Construct the argument parser with all run options."""
    p = argparse.ArgumentParser(
        description="Convert a research paper into narrated audio with timed segments.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "examples:\n"
            "  python narrate_paper.py paper.pdf\n"
            "  python narrate_paper.py https://arxiv.org/abs/1706.03762 out/\n"
            "  python narrate_paper.py paper.pdf --source partition -v 2\n"
        ),
    )

    # -- Positional --------------------------------------------------------
    p.add_argument("input", nargs="?", help="Path to a PDF file, or an http(s) link to one")
    p.add_argument(
        "output_dir",
        nargs="?",
        default="output",
        help="Directory for audio, metadata and run status (default: output)",
    )

    # -- Model -------------------------------------------------------------
    model = p.add_argument_group("model")
    model.add_argument("--model", default=NarratorConfig.model, help="Chat model for all structured calls")
    model.add_argument(
        "--retries",
        type=int,
        default=3,
        metavar="N",
        help="Attempts per model or synthesis call (default: 3)",
    )
    model.add_argument(
        "--batch-size",
        type=int,
        default=20,
        metavar="N",
        help="Concurrent model calls per batch (default: 20)",
    )

    # -- Extraction --------------------------------------------------------
    extraction = p.add_argument_group("extraction")
    extraction.add_argument(
        "--source",
        choices=EXTRACTION_SOURCES,
        default="vision",
        help="vision: items straight from page images; "
        "partition: YOLO layout + text layer, then retyping (default: vision)",
    )
    extraction.add_argument(
        "--detect-relevant",
        action="store_true",
        help="Drop cover, boilerplate and reference-only pages first",
    )
    extraction.add_argument(
        "--figure-examples",
        default=None,
        metavar="DIR",
        help="Few-shot figure summaries: images paired with same-named .json answers",
    )
    extraction.add_argument(
        "--render-scale",
        type=float,
        default=2.0,
        metavar="FLOAT",
        help="Resolution multiplier for page images (default: 2.0)",
    )
    extraction.add_argument(
        "--yolo-model",
        default=None,
        metavar="PATH",
        help="YOLO .pt weights for --source partition (downloaded if omitted)",
    )
    extraction.add_argument(
        "--yolo-device",
        default=None,
        metavar="DEVICE",
        help='Force YOLO device (e.g. "cpu", "cuda:0")',
    )
    extraction.add_argument(
        "--confidence",
        type=float,
        default=0.35,
        metavar="FLOAT",
        help="YOLO detection confidence threshold (default: 0.35)",
    )

    # -- Voice -------------------------------------------------------------
    voice = p.add_argument_group("voice")
    voice.add_argument(
        "--voice",
        default=DEFAULT_NARRATION_VOICE,
        help=f"Kokoro voice for prose (default: {DEFAULT_NARRATION_VOICE})",
    )
    voice.add_argument(
        "--summary-voice",
        default=DEFAULT_SUMMARY_VOICE,
        help=f"Kokoro voice for figure/table/code summaries (default: {DEFAULT_SUMMARY_VOICE})",
    )
    voice.add_argument(
        "--lang",
        default="a",
        choices=["a", "b"],
        help="Language code: 'a' American English, 'b' British English (default: a)",
    )
    voice.add_argument(
        "--list-voices",
        action="store_true",
        help="List available Kokoro voices, then exit",
    )

    # -- Audio -------------------------------------------------------------
    audio = p.add_argument_group("audio")
    audio.add_argument("--output-wav", action="store_true", help="Export as WAV instead of MP3")
    audio.add_argument("--bitrate", default="192k", help="MP3 bitrate (default: 192k)")

    # -- Run ---------------------------------------------------------------
    run = p.add_argument_group("run")
    run.add_argument("--user", default="anonymous", help="Owner prefix for stored artifacts")
    run.add_argument("--method", default="full", help="Summarization method: 'full' (or its alias 'ultimate')")

    # -- Debug / output control --------------------------------------------
    debug = p.add_argument_group("debug & output")
    debug.add_argument(
        "--save-snapshots",
        action="store_true",
        help="Store parsed and filtered item lists next to the audio",
    )
    debug.add_argument(
        "-v",
        "--verbose",
        type=int,
        choices=[0, 1, 2],
        default=1,
        help="Verbosity: 0=quiet, 1=normal (default), 2=debug",
    )
    debug.add_argument("--no-progress", action="store_true", help="Disable tqdm progress bars")

    return p


# ------------------------------------------------------------------
# Logging setup
# ------------------------------------------------------------------

# Message format and date format per level; DEBUG carries time and module
_LOG_FORMATS = {
    logging.DEBUG: ("%(asctime)s %(name)s %(levelname)s: %(message)s", "%H:%M:%S"),
    logging.INFO: ("%(message)s", None),
    logging.WARNING: ("%(levelname)s: %(message)s", None),
}

_OWN_LOGGERS = ("papernarrator", "paperdoc")
_QUIET_LOGGERS = ("ultralytics", "kokoro", "PIL", "urllib3", "httpx", "openai")


def _configure_logging(verbosity: int) -> None:
    """Route both of our packages to stderr and hush third-party loggers."""
    level = _VERBOSITY_MAP.get(verbosity, logging.INFO)
    fmt, datefmt = _LOG_FORMATS[level]

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(fmt, datefmt=datefmt))

    for name in _OWN_LOGGERS:
        own = logging.getLogger(name)
        own.setLevel(level)
        own.handlers[:] = [handler]

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


# ------------------------------------------------------------------
# Sub-commands
# ------------------------------------------------------------------


def _cmd_list_voices() -> None:
    """Print the Kokoro voice table."""
    row = "  %-13s %-9s %-7s %s"
    logger.info(row, "ID", "ACCENT", "GENDER", "NAME")
    for voice_id, info in KOKORO_VOICES.items():
        marks = []
        if voice_id == DEFAULT_NARRATION_VOICE:
            marks.append("narration default")
        if voice_id == DEFAULT_SUMMARY_VOICE:
            marks.append("summary default")
        name = info["name"] + (f"  ({', '.join(marks)})" if marks else "")
        logger.info(row, voice_id, info["accent"], info["gender"], name)
    logger.info("Pick with --voice and --summary-voice; --lang selects the accent model.")


# ------------------------------------------------------------------
# Entry point
# ------------------------------------------------------------------


def main():
    """Parse arguments, configure logging, and run one narration."""
    load_dotenv()
    parser = _build_parser()
    args = parser.parse_args()

    _configure_logging(args.verbose)

    if args.list_voices:
        _cmd_list_voices()
        return

    if not args.input:
        parser.error("input is required")

    is_link = args.input.lower().startswith(("http://", "https://"))
    request = {"user": args.user, "method": args.method}
    if is_link:
        request["link"] = args.input
    else:
        input_path = Path(args.input)
        if not input_path.exists():
            parser.error(f"Input file not found: {input_path}")
        request["file_bytes"] = input_path.read_bytes()
        request["file_name"] = input_path.name

    if args.figure_examples and not Path(args.figure_examples).is_dir():
        parser.error(f"Figure example directory not found: {args.figure_examples}")

    config = NarratorConfig(
        model=args.model,
        retries=args.retries,
        llm_batch_size=args.batch_size,
        extraction_source=args.source,
        detect_relevant_pages=args.detect_relevant,
        figure_examples_dir=args.figure_examples,
        render_scale=args.render_scale,
        yolo_model_path=args.yolo_model,
        yolo_device=args.yolo_device,
        yolo_confidence=args.confidence,
        narration_voice=args.voice,
        summary_voice=args.summary_voice,
        lang_code=args.lang,
        audio_format="wav" if args.output_wav else "mp3",
        mp3_bitrate=args.bitrate,
        save_snapshots=args.save_snapshots,
        disable_tqdm=args.no_progress or args.verbose == 0,
    )

    logger.info("Paper narration")
    logger.info("  Input:  %s", args.input)
    logger.info("  Output: %s", args.output_dir)
    logger.info("  Source: %s%s", config.extraction_source, " + relevance" if config.detect_relevant_pages else "")
    logger.info("  Voices: %s / %s (lang=%s)", config.narration_voice, config.summary_voice, config.lang_code)

    store = LocalBlobStore(args.output_dir)
    driver = RunDriver(NarrationPipeline(config), store, config=config)
    status = driver.run(**request)

    print(json.dumps(status, indent=2))
    if status["status"] == RunStatus.ERROR.value:
        sys.exit(1)


if __name__ == "__main__":
    main()

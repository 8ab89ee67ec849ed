"""Command-line interface for storytime-tts."""

import argparse
import logging
import sys
from functools import partial
from pathlib import Path

from storytime_tts import __version__
from storytime_tts.errors import ReadError, StoryTimeError
from storytime_tts.models import Emotion, Speed, Tone, VoiceConfig


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="storytime-tts",
        description="Narrate a page-marked story file into one audio clip per page",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    parser.add_argument(
        "input_file",
        nargs="?",
        help='Story .txt file using "Page 1", "Page 2", ... as page markers',
    )
    parser.add_argument(
        "-o", "--output-dir",
        default=".",
        help="Directory for Story_Audio_Pack.zip (default: current directory)",
    )
    parser.add_argument(
        "-e", "--engine",
        default="edge",
        choices=["edge", "gemini", "kokoro", "piper", "mock"],
        help="Speech engine to use (default: edge)",
    )
    parser.add_argument(
        "-v", "--voice",
        default=None,
        help="Voice name (engine specific)",
    )
    parser.add_argument(
        "--emotion",
        default=Emotion.GENTLE.value,
        choices=Emotion.values(),
        type=lambda s: Emotion.parse(s).value,
        help="Narration emotion (default: Gentle)",
    )
    parser.add_argument(
        "--tone",
        default=Tone.WARM.value,
        choices=Tone.values(),
        type=lambda s: Tone.parse(s).value,
        help="Narration tone (default: Warm)",
    )
    parser.add_argument(
        "--speed",
        default=Speed.NORMAL.value,
        choices=Speed.values(),
        type=lambda s: Speed.parse(s).value,
        help="Speech speed (default: Normal)",
    )
    parser.add_argument(
        "-l", "--language",
        default="en",
        help="Language code (default: en)",
    )
    parser.add_argument(
        "--clips",
        action="store_true",
        help="Also save each Page_<n>.wav next to the archive",
    )
    parser.add_argument(
        "--preview",
        action="store_true",
        help="Play a short sample of the first page with the chosen voice and exit",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show how the story is split into pages and exit",
    )
    parser.add_argument(
        "--list-voices",
        action="store_true",
        help="List the voices available for the selected engine and exit",
    )
    parser.add_argument(
        "--piper-model",
        default=None,
        help="Path to a Piper .onnx model (piper engine only)",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args(argv)

    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )

    from storytime_tts.tts import get_engine, import_engines

    import_engines()

    if args.list_voices:
        engine = get_engine(args.engine)
        engine.initialize()
        voices = engine.list_voices(args.language)
        if not voices:
            print(f"No voices found for language '{args.language}' with engine '{args.engine}'")
            sys.exit(0)
        print(f"\nAvailable voices ({engine.name}, language: {args.language}):\n")
        for v in voices:
            gender = v.get("gender", "")
            print(f"  {v['name']:<35} {v['language']:<10} {gender}")
        sys.exit(0)

    if not args.input_file:
        parser.error("Specify the story file to narrate")

    input_path = Path(args.input_file)
    if not input_path.exists():
        parser.error(f"File not found: {input_path}")

    from storytime_tts.segmenter import load_story

    try:
        pages = load_story(input_path)
    except ReadError as e:
        logging.error("%s", e)
        if e.detail:
            logging.debug("Details: %s", e.detail)
        sys.exit(1)

    if not pages:
        print(f'No pages found in {input_path}. Nothing to generate.')
        sys.exit(0)

    if args.dry_run:
        _print_pages(pages)
        sys.exit(0)

    engine = get_engine(args.engine)
    if args.engine == "piper" and args.piper_model:
        engine.model_path = args.piper_model

    if args.engine == "edge":
        from storytime_tts.audio.audio_utils import check_ffmpeg

        check_ffmpeg()

    engine.initialize()

    config = VoiceConfig.from_strings(
        emotion=args.emotion,
        tone=args.tone,
        speed=args.speed,
        voice=args.voice or "",
        language=args.language,
    )

    if args.preview:
        _run_preview(pages, config, engine, args.verbose)
        return

    _run_generation(pages, config, engine, Path(args.output_dir), args.clips, args.verbose)


def _print_pages(pages) -> None:
    print(f"\n{len(pages)} pages:\n")
    for page in pages:
        excerpt = " ".join(page.content.split())
        if len(excerpt) > 70:
            excerpt = excerpt[:67] + "..."
        print(f"  Page {page.id:<4} {excerpt}")


def _run_preview(pages, config, engine, verbose: bool) -> None:
    from storytime_tts.preview import play_audio, preview_pages

    try:
        preview_pages(pages, config, engine, play=partial(play_audio, blocking=True))
    except StoryTimeError as e:
        logging.error("%s", e)
        if verbose:
            logging.exception("Details:")
        sys.exit(1)


def _run_generation(pages, config, engine, output_dir: Path, save_clips: bool, verbose: bool) -> None:
    from storytime_tts.audio.audio_utils import wav_duration_ms
    from storytime_tts.bundler import export, save_to_directory
    from storytime_tts.pipeline import GenerationPipeline
    from storytime_tts.progress import ProgressReporter

    pipeline = GenerationPipeline(engine)
    reporter = ProgressReporter(len(pages))
    save = save_to_directory(output_dir)

    try:
        results = pipeline.run_all(pages, config, on_progress=reporter.update)
        reporter.close()

        archive_name = export(results, save)
        if save_clips:
            for result in results:
                save(result.audio, result.filename)
    except KeyboardInterrupt:
        print("\n\nNarration interrupted.")
        sys.exit(1)
    except Exception as e:
        state = pipeline.snapshot()
        logging.error("Error: %s", e)
        if state.results:
            logging.error(
                "Generated %d of %d pages before the failure",
                len(state.results), len(pages),
            )
        if verbose:
            logging.exception("Details:")
        sys.exit(1)
    finally:
        reporter.close()
        pipeline.close()

    total_ms = sum(wav_duration_ms(r.audio) for r in results)
    print(f"\nNarrated {len(results)} pages ({total_ms / 1000:.1f}s of audio)")
    print(f"Audio pack saved: {output_dir / archive_name}")


if __name__ == "__main__":
    main()

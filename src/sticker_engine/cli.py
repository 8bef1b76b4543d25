"""Command-line entry point: run the API server or one batch directly."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

from sticker_engine.core.config import settings
from sticker_engine.core.jobs import GenerationJob, JobStatus, Preset
from sticker_engine.services import build_scheduler
from sticker_engine.services.presets import DEFAULT_BASE_PROMPT, PresetLibrary

logger = logging.getLogger(__name__)


def _parse_indices(value: str) -> List[int]:
    try:
        return [int(part) for part in value.split(",") if part.strip()]
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected comma-separated indices, got {value!r}")


async def run_batch(
    mother: Path,
    anchor: Path,
    presets: List[Preset],
    output: Optional[Path] = None,
    prompt: Optional[str] = None,
) -> GenerationJob:
    """Generate one batch through the same scheduler the server uses."""
    job = GenerationJob(
        mother_image_path=str(mother),
        anchor_image_path=str(anchor),
        base_prompt=prompt or DEFAULT_BASE_PROMPT,
        items=presets,
    )

    scheduler = build_scheduler(settings, output_root=output)
    await scheduler.start()
    try:
        scheduler.enqueue(job)
        await scheduler.wait_idle()
    finally:
        await scheduler.stop()
    return job


def generate_command(args: argparse.Namespace) -> int:
    for label, path in (("mother", args.mother), ("anchor", args.anchor)):
        if not path.is_file():
            print(f"Error: {label} image not found: {path}", file=sys.stderr)
            return 1

    prompt = None
    if args.prompt_file:
        prompt = args.prompt_file.read_text(encoding="utf-8")

    try:
        presets = PresetLibrary(settings.PRESETS_PATH).select(args.presets)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: preset library unavailable: {e}", file=sys.stderr)
        return 1
    if not presets:
        print("Error: no presets selected", file=sys.stderr)
        return 1

    job = asyncio.run(run_batch(args.mother, args.anchor, presets, args.output, prompt))

    print(f"\nTask {job.id}: {job.status.value}")
    print(f"  Succeeded: {job.success_count}/{job.total}")
    print(f"  Failed:    {job.failed_count}/{job.total}")
    for result in job.results:
        if not result.success:
            print(f"    - #{result.index} {result.title}: {result.error}")
    if job.error:
        print(f"  Error: {job.error}")

    return 0 if job.status == JobStatus.COMPLETED else 1


def serve_command(args: argparse.Namespace) -> int:
    from sticker_engine.main import main as serve

    serve()
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    parser = argparse.ArgumentParser(prog="sticker-engine", description="LINE sticker batch generator")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.set_defaults(func=serve_command)

    generate_parser = subparsers.add_parser("generate", help="Generate one batch without the server")
    generate_parser.add_argument("mother", type=Path, help="Mother (identity) reference image")
    generate_parser.add_argument("anchor", type=Path, help="Anchor (style) reference image")
    generate_parser.add_argument("--output", type=Path, default=None, help="Output root directory")
    generate_parser.add_argument("--prompt-file", type=Path, default=None, help="Custom base prompt file")
    generate_parser.add_argument("--presets", type=_parse_indices, default=None,
                                 help="Comma-separated preset indices (default: all)")
    generate_parser.set_defaults(func=generate_command)

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())

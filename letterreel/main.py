"""letterreel - command line entry point for the letter video service."""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Optional, Sequence

from .config import settings
from .errors import LetterVideoError
from .models import HeaderSource, LetterRequest, looks_like_svg
from .utils import get_logger, setup_logging

logger = get_logger(__name__)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="letterreel - render letters into scrolling narrated videos",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m letterreel.main serve                       # HTTP service on $PORT
  python -m letterreel.main render --audio a.mp3 \\
      --title "Dear Sam" --content-file letter.txt \\
      --author "Alex" --template-id 4 --output out.mp4  # Local render
  python -m letterreel.main render --content-file letter.txt --pdf out.pdf
        """,
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the HTTP service")
    serve.add_argument("--host", default=settings.host, help="Bind address")
    serve.add_argument("--port", type=int, default=settings.port, help="Bind port")

    render = subparsers.add_parser("render", help="Render a letter from local files")
    render.add_argument("--title", default="", help="Letter title")
    render.add_argument("--content-file", type=Path, required=True, help="UTF-8 file with the letter body")
    render.add_argument("--author", default="", help="Author name")
    render.add_argument("--template-id", help="Header template identifier")
    render.add_argument("--header-image", type=Path, help="Header image file (PNG, JPEG or SVG)")
    render.add_argument("--audio", type=Path, help="Narration audio file")
    render.add_argument("--output", type=Path, help="Output MP4 path")
    render.add_argument("--pdf", type=Path, help="Also write a PDF to this path")

    return parser.parse_args(argv)


def build_letter(args: argparse.Namespace) -> LetterRequest:
    """Assemble a LetterRequest from render arguments."""
    header = None
    if args.header_image:
        data = args.header_image.read_bytes()
        header = HeaderSource(data=data, is_svg=looks_like_svg(data))
    return LetterRequest(
        title=args.title,
        content=args.content_file.read_text(encoding="utf-8"),
        author_name=args.author,
        template_id=args.template_id,
        header_image=header,
        audio_bytes=args.audio.read_bytes() if args.audio else b"",
    )


async def render_local(args: argparse.Namespace) -> None:
    """Render a video and/or PDF without going through HTTP."""
    from .browser_pool import BrowserPool
    from .pipeline import LetterVideoPipeline

    letter = build_letter(args)
    pool = BrowserPool(settings)
    pipeline = LetterVideoPipeline(settings, pool=pool)
    try:
        if args.output:
            video = await pipeline.generate_video(letter)
            args.output.parent.mkdir(parents=True, exist_ok=True)
            args.output.write_bytes(video)
            logger.info(f"Video saved to {args.output}")
        if args.pdf:
            pdf = await pipeline.generate_document(letter)
            args.pdf.parent.mkdir(parents=True, exist_ok=True)
            args.pdf.write_bytes(pdf)
            logger.info(f"PDF saved to {args.pdf}")
    finally:
        await pool.close()


def serve(args: argparse.Namespace) -> None:
    """Run the HTTP service until interrupted."""
    from .server import ServiceRuntime, create_app

    runtime = ServiceRuntime(settings)
    app = create_app(runtime, settings)
    logger.info(f"Media generation API listening on {args.host}:{args.port}")
    try:
        app.run(host=args.host, port=args.port, threaded=True)
    finally:
        runtime.close()


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    setup_logging(
        level="DEBUG" if args.debug else settings.log_level,
        gcp_project_id=settings.gcp_project_id,
    )
    settings.ensure_directories()

    if args.command == "serve":
        serve(args)
        return 0

    if not args.output and not args.pdf:
        logger.error("Nothing to do: pass --output and/or --pdf")
        return 1
    try:
        asyncio.run(render_local(args))
    except LetterVideoError as e:
        logger.error(f"Render failed: {e}")
        return 1
    except OSError as e:
        logger.error(f"File error: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())

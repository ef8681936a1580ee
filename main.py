"""
LinguaComic - Entry Point

Two modes:
1. serve  - start the dashboard JSON API (default)
2. run    - one-shot pipeline run, prints the Document as JSON

Usage:
    python main.py
    python main.py serve --port 5000
    python main.py run --text "The water cycle..." [--image page.jpg] [--vocab "verbs only"]

Requires .env file with GOOGLE_API_KEY and FAL_API_KEY.
"""

import argparse
import asyncio
import json
import logging
import sys

from dotenv import load_dotenv

# Load environment variables before anything else
load_dotenv()

from linguacomic.config import load_config
from linguacomic.graph_model import GraphModel
from linguacomic.pipeline import LearningBundlePipeline, has_input
from linguacomic.sources import load_source_image

logger = logging.getLogger("linguacomic")


def configure_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        handlers=[logging.StreamHandler()],
    )


async def run_once(args, config) -> int:
    """Run the pipeline once and print the resulting bundle."""
    image_bytes = None
    mime_type = None
    if args.image:
        try:
            image_bytes, mime_type = load_source_image(args.image)
        except (OSError, ValueError) as e:
            logger.error(f"Cannot read image {args.image}: {e}")
            return 2

    text = args.text or ""
    if not has_input(text, image_bytes):
        logger.error("Provide --text or --image")
        return 2

    pipeline = LearningBundlePipeline(config=config)
    document = await pipeline.run(
        text=text,
        image_bytes=image_bytes,
        image_mime_type=mime_type,
        vocab_criteria=args.vocab or "",
    )
    if document is None:
        logger.error(pipeline.error_message or "Run did not complete")
        return 1

    output = document.to_dict()
    if args.layout:
        graph = GraphModel(document, width=config.graph_width, height=config.graph_height)
        graph.layout.run()
        output["layout"] = graph.layout.to_dict()

    json.dump(output, sys.stdout, indent=2)
    sys.stdout.write("\n")
    return 0


def main():
    parser = argparse.ArgumentParser(description="LinguaComic learning bundle generator")
    sub = parser.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="Start the dashboard API")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)

    run = sub.add_parser("run", help="Generate one bundle and print it")
    run.add_argument("--text", default="")
    run.add_argument("--image", default=None, help="Path to a textbook photo")
    run.add_argument("--vocab", default="", help="Vocabulary selection criteria")
    run.add_argument("--layout", action="store_true", help="Include a settled graph layout")

    args = parser.parse_args()
    config = load_config()
    configure_logging(config.log_level)

    if args.command == "run":
        sys.exit(asyncio.run(run_once(args, config)))

    from dashboard.app import create_app

    host = getattr(args, "host", None) or config.dashboard_host
    port = getattr(args, "port", None) or config.dashboard_port
    logger.info(f"Dashboard listening on http://{host}:{port}")
    create_app(config=config).run(host=host, port=port)


if __name__ == "__main__":
    main()

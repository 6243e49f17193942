"""
Entry point: generate and publish one blog post.

Usage::

    python run.py                         # general post
    python run.py --type tool             # "AI Tool of the Day" post
    python run.py --max-research-points 3 # research only the first 3 points

Exits 0 when a post was published and 1 otherwise.
"""

import argparse
import asyncio
import logging
import sys

from dotenv import load_dotenv

load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s | %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("run")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate and publish a blog post.")
    parser.add_argument(
        "--type",
        choices=("general", "tool"),
        default="general",
        help="general post or 'AI Tool of the Day' post (default: general)",
    )
    parser.add_argument(
        "--max-research-points",
        type=int,
        default=None,
        help="research at most N outline points (default: all)",
    )
    return parser.parse_args(argv)


async def main(args: argparse.Namespace) -> int:
    from autoblog.agents.orchestrator import PipelineContext, run_pipeline, run_tool_post
    from autoblog.config import get_settings, validate_env
    from autoblog.database import SupabaseDB
    from autoblog.logging import LogComponent, LogLevel, init_logger
    from autoblog.tools.arxiv import ArxivClient
    from autoblog.tools.feeds import ResearchFeed
    from autoblog.tools.gemini_client import GeminiClient

    validate_env()
    settings = get_settings()
    if args.max_research_points is not None:
        settings.research_max_points = args.max_research_points
    logging.getLogger().setLevel(settings.log_level.upper())

    database = await SupabaseDB.create()
    agent_logger = init_logger(
        log_dir=settings.log_dir,
        database=database,
        min_level=LogLevel.from_name(settings.log_level),
    )
    await agent_logger.info(
        LogComponent.STARTUP,
        f"Starting {args.type} post generation",
        data={"model": settings.text_model, "max_points": settings.research_max_points},
    )

    context = PipelineContext(
        settings=settings,
        gemini=GeminiClient(model=settings.text_model, image_model=settings.image_model),
        database=database,
        feed=ResearchFeed(arxiv_client=ArxivClient()),
        logger=agent_logger,
    )

    try:
        if args.type == "tool":
            result = await run_tool_post(context)
        else:
            result = await run_pipeline(context)
    finally:
        await agent_logger.flush()

    stats = result.get("statistics", {})
    if result["status"] == "published":
        logger.info(
            "Published '%s' (slug=%s, read_time=%s min, citations=%s, image=%s)",
            result["title"],
            result["slug"],
            stats.get("read_time"),
            stats.get("citations"),
            stats.get("has_image"),
        )
        return 0

    if result["status"] == "duplicate":
        logger.warning("Post '%s' already exists (slug=%s)", result["title"], result["slug"])
    else:
        logger.error(
            "Run %s failed at stage %s: %s",
            result["run_id"],
            result.get("error_stage"),
            result.get("error"),
        )
    for warning in result.get("warnings", []):
        logger.warning("  %s", warning)
    return 1


def cli() -> None:
    try:
        exit_code = asyncio.run(main(parse_args()))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        sys.exit(1)
    except Exception:
        logger.exception("Run aborted")
        sys.exit(1)
    sys.exit(exit_code)


if __name__ == "__main__":
    cli()

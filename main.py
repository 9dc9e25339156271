"""
ReviewLens - Review Ingestion and Sentiment Analysis

CLI entry point for the ingestion and analysis pipeline.
"""

import argparse
import asyncio
import json
import logging
import sys

from src.orchestrator import PipelineOrchestrator
import config.settings as settings


def setup_logging(log_level: str = "INFO"):
    """Configure logging for the entire application."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format=settings.LOG_FORMAT,
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(settings.LOG_FILE)
        ]
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="ReviewLens - Review Ingestion and Sentiment Analysis",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Create a project and scrape its reviews
  python main.py create "Cafe Roma" --owner alice \\
                 --source "https://www.google.com/maps/place/Cafe+Roma/@-33.86,151.20,17z"

  # Import a CSV export, then analyze it in fast mode
  python main.py import-csv <project-id> reviews.csv
  python main.py analyze <project-id> --mode fast

  # Check progress and results
  python main.py progress <project-id>
  python main.py summary <project-id> --detailed

Note: Set GOOGLE_API_KEY before running analyze. GOOGLE_PLACES_API_KEY and
OUTSCRAPER_API_KEY enable the corresponding scraping providers.
        """
    )

    parser.add_argument(
        "--data-root",
        default=str(settings.DATA_ROOT),
        help=f"Data directory (default: {settings.DATA_ROOT})"
    )

    parser.add_argument(
        "--log-level",
        default=settings.LOG_LEVEL,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help=f"Logging level (default: {settings.LOG_LEVEL})"
    )

    commands = parser.add_subparsers(dest="command", required=True)

    create = commands.add_parser("create", help="Create a project")
    create.add_argument("name", help="Project name")
    create.add_argument("--owner", required=True, help="Owning user id")
    create.add_argument("--description", help="Project description")
    create.add_argument("--source", help="Maps URL or business name to scrape right away")
    create.add_argument(
        "--max-reviews",
        type=int,
        default=settings.DEFAULT_MAX_REVIEWS,
        help=f"Reviews requested per provider (default: {settings.DEFAULT_MAX_REVIEWS})"
    )

    import_csv = commands.add_parser("import-csv", help="Import reviews from a CSV file")
    import_csv.add_argument("project_id")
    import_csv.add_argument("csv_path")

    scrape = commands.add_parser("scrape", help="Scrape reviews for a location")
    scrape.add_argument("project_id")
    scrape.add_argument("source", help="Maps URL, place reference or business name")
    scrape.add_argument(
        "--max-reviews",
        type=int,
        default=settings.DEFAULT_MAX_REVIEWS,
        help=f"Reviews requested per provider (default: {settings.DEFAULT_MAX_REVIEWS})"
    )
    scrape.add_argument(
        "--strategy",
        default=settings.INGESTION_STRATEGY,
        choices=["merge", "fallback"],
        help=f"Provider combination strategy (default: {settings.INGESTION_STRATEGY})"
    )

    analyze = commands.add_parser("analyze", help="Analyze unanalyzed reviews")
    analyze.add_argument("project_id")
    analyze.add_argument("--mode", default="standard", choices=["standard", "fast"])

    progress = commands.add_parser("progress", help="Show project progress")
    progress.add_argument("project_id")

    summary = commands.add_parser("summary", help="Show sentiment summary")
    summary.add_argument("project_id")
    summary.add_argument("--detailed", action="store_true", help="Include detailed breakdowns")

    recent = commands.add_parser("recent", help="Show latest analyses")
    recent.add_argument("project_id")
    recent.add_argument("--limit", type=int, default=settings.RECENT_ANALYSES_LIMIT)

    export = commands.add_parser("export", help="Export analyses to CSV")
    export.add_argument("project_id")
    export.add_argument("--output-dir", default=str(settings.OUTPUT_ROOT))

    delete = commands.add_parser("delete", help="Delete a project and its reviews")
    delete.add_argument("project_id")

    list_projects = commands.add_parser("list", help="List projects")
    list_projects.add_argument("--owner", help="Only this owner's projects")

    return parser


async def run_command(args, orchestrator: PipelineOrchestrator) -> dict:
    if args.command == "create":
        return await orchestrator.create_project(
            args.name, args.owner, args.description, args.source, args.max_reviews
        )
    if args.command == "import-csv":
        return await orchestrator.ingest_csv(args.project_id, args.csv_path)
    if args.command == "scrape":
        return await orchestrator.ingest(args.project_id, args.source, args.max_reviews)
    if args.command == "analyze":
        return await orchestrator.run_analysis(args.project_id, args.mode)
    if args.command == "progress":
        return await orchestrator.get_progress(args.project_id)
    if args.command == "summary":
        if args.detailed:
            return await orchestrator.detailed(args.project_id)
        return await orchestrator.summary(args.project_id)
    if args.command == "recent":
        return await orchestrator.recent(args.project_id, args.limit)
    if args.command == "export":
        return await orchestrator.export(args.project_id, args.output_dir)
    if args.command == "delete":
        return await orchestrator.delete_project(args.project_id)
    return await orchestrator.list_projects(args.owner)


def main():
    """Main CLI entry point."""
    args = build_parser().parse_args()

    # Setup logging
    setup_logging(args.log_level)
    logger = logging.getLogger(__name__)

    # Validate API key
    if args.command == "analyze" and not settings.GOOGLE_API_KEY:
        logger.error(
            "GOOGLE_API_KEY environment variable not set. "
            "Please set it before running analysis."
        )
        sys.exit(1)

    try:
        orchestrator = PipelineOrchestrator.from_settings(
            api_key=settings.GOOGLE_API_KEY,
            data_root=args.data_root,
            places_api_key=settings.GOOGLE_PLACES_API_KEY,
            outscraper_api_key=settings.OUTSCRAPER_API_KEY,
            strategy=getattr(args, "strategy", settings.INGESTION_STRATEGY),
        )
        result = asyncio.run(run_command(args, orchestrator))

    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        print("\nInterrupted")
        sys.exit(1)

    except Exception as e:
        logger.error(f"Command failed: {e}", exc_info=True)
        print(f"\nCommand failed: {e}")
        print(f"Check {settings.LOG_FILE} for details")
        sys.exit(1)

    print(json.dumps(result, indent=2, default=str))
    sys.exit(0 if result.get("success") else 1)


if __name__ == "__main__":
    main()

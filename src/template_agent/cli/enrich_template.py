"""CLI for WLO enrichment of a template's learning environments.

Usage:
    python -m template_agent.cli.enrich_template \
        --input templates/bruchrechnen.json \
        --output output/bruchrechnen.enriched.json \
        --generate-criteria \
        --endpoint STAGING \
        --max-items 5

Features:
- Optional filter-criteria generation, either up front for every manual/filter
  resource (--generate-criteria) or during the search for filter resources
  without criteria (--fill-missing-criteria)
- Batched, cancellable WLO search (Ctrl-C cancels after the running batch)
- Status lines printed above a tqdm progress bar
- Token usage report when criteria were generated
"""

import argparse
import logging
import signal
import sys
import time
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from tqdm import tqdm

from template_agent import config
from template_agent.enrichers.criteria_generator import CriteriaGenerator
from template_agent.enrichers.environments import (
    apply_environments,
    assign_filter_criteria,
    enrich_environments,
    parse_environments,
    template_context,
)
from template_agent.enrichers.resource_processor import ProcessOptions, ResourceProcessor
from template_agent.exceptions import MissingCredentialError, OperationCancelled
from template_agent.models.wlo import CombineMode
from template_agent.utils.cancellation import CancellationToken
from template_agent.utils.file_io import read_json, write_json
from template_agent.utils.llm_client import LLMClient
from template_agent.utils.logging_config import configure_logging
from template_agent.utils.status import StatusLog
from template_agent.validators.schema import Environment
from template_agent.wlo.search_client import WLOSearchClient, WLOSearchConfig
from template_agent.wlo.vocabularies import DEFAULT_FILTER_TYPES, FilterType

logger = logging.getLogger(__name__)

load_dotenv()


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Link template resources to WirLernenOnline content",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Resolve existing filter criteria against production
  python -m template_agent.cli.enrich_template \\
      --input template.json --output template.enriched.json

  # Generate criteria first, search staging, OR-combine the criteria
  python -m template_agent.cli.enrich_template \\
      --input template.json --output template.enriched.json \\
      --generate-criteria --endpoint STAGING --combine-mode OR
        """,
    )

    parser.add_argument("--input", required=True, type=Path, help="Template JSON file")
    parser.add_argument("--output", required=True, type=Path, help="Output JSON file path")

    criteria = parser.add_mutually_exclusive_group()
    criteria.add_argument(
        "--generate-criteria",
        action="store_true",
        help="Generate filter criteria for every manual/filter resource before searching",
    )
    criteria.add_argument(
        "--fill-missing-criteria",
        action="store_true",
        help="Generate criteria during the search, only for filter resources that have none",
    )
    parser.add_argument(
        "--filters",
        nargs="+",
        default=[f.name.lower() for f in DEFAULT_FILTER_TYPES],
        choices=[f.name.lower() for f in FilterType],
        help="Filter types to generate (default: title content_type discipline)",
    )
    parser.add_argument("--model", default=config.LLM_MODEL, help="Language model name")

    parser.add_argument(
        "--endpoint",
        default=config.WLO_ENDPOINT,
        help="PRODUCTION, STAGING or a full REST base URL",
    )
    parser.add_argument("--proxy", default=config.WLO_PROXY_URL, help="HTTP(S) proxy URL")
    parser.add_argument(
        "--timeout", type=float, default=config.WLO_TIMEOUT, help="Request timeout in seconds"
    )
    parser.add_argument(
        "--max-items",
        type=int,
        default=config.DEFAULT_MAX_ITEMS,
        help=f"Maximum WLO results per resource (default: {config.DEFAULT_MAX_ITEMS})",
    )
    parser.add_argument(
        "--combine-mode",
        default=config.DEFAULT_COMBINE_MODE.upper(),
        choices=[m.value for m in CombineMode],
        type=str.upper,
        help="How filter criteria are combined (default: AND)",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=config.BATCH_SIZE,
        help=f"Resources searched concurrently (default: {config.BATCH_SIZE})",
    )

    parser.add_argument(
        "--log-level",
        default=config.LOG_LEVEL.upper(),
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )
    parser.add_argument("--log-file", type=Path, default=None, help="Optional log file")

    return parser.parse_args(argv)


def install_cancel_handler(token: CancellationToken) -> None:
    """Ctrl-C cancels the token instead of killing the worker threads."""

    def _handler(signum, frame):
        tqdm.write("\nCancelling after the running batch...")
        token.cancel("Interrupted by user")

    signal.signal(signal.SIGINT, _handler)


def run_enrichment(
    environments: List[Environment],
    processor: ResourceProcessor,
    status: StatusLog,
    options: ProcessOptions,
) -> List[Environment]:
    """Enrich environment by environment under a progress bar.

    Raises:
        OperationCancelled: With ``partial_result`` covering all environments
    """
    done: List[Environment] = []
    for index, env in enumerate(tqdm(environments, desc="Environments", unit="env")):
        try:
            done.extend(enrich_environments([env], processor, status, options))
        except OperationCancelled as e:
            e.partial_result = done + (e.partial_result or [env]) + environments[index + 1:]
            raise
    return done


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    args = parse_args(argv)

    configure_logging(
        level=getattr(logging, args.log_level),
        log_file=args.log_file,
        json_format=config.LOG_FORMAT == "json",
        console_output=True,
    )

    logger.info("=" * 80)
    logger.info("WLO Template Enrichment")
    logger.info("=" * 80)
    logger.info(f"Input: {args.input}")
    logger.info(f"Output: {args.output}")
    logger.info(f"Endpoint: {config.resolve_endpoint(args.endpoint)}")
    logger.info(
        f"Generate criteria: {args.generate_criteria}, "
        f"fill missing criteria: {args.fill_missing_criteria}"
    )
    logger.info(f"Max items: {args.max_items}, combine mode: {args.combine_mode}")
    logger.info("=" * 80)

    if not args.input.exists():
        logger.error(f"Input file not found: {args.input}")
        return 1

    try:
        template = read_json(args.input)
        environments = parse_environments(template.get("environments") or [])
    except Exception as e:
        logger.error(f"Failed to load template: {e}", exc_info=True)
        return 1

    if args.batch_size < 1:
        logger.error(f"Batch size must be positive, got {args.batch_size}")
        return 1

    token = CancellationToken()
    install_cancel_handler(token)
    status = StatusLog(echo=tqdm.write)
    context = template_context(template)

    llm_client = None
    if args.generate_criteria or args.fill_missing_criteria:
        try:
            llm_client = LLMClient(model=args.model)
        except MissingCredentialError as e:
            logger.error(str(e))
            return 1

    search_client = WLOSearchClient(
        WLOSearchConfig(endpoint=args.endpoint, proxy_url=args.proxy, timeout=args.timeout)
    )
    processor = ResourceProcessor(
        search_client,
        criteria_generator=CriteriaGenerator(llm_client) if args.fill_missing_criteria else None,
        batch_size=args.batch_size,
    )
    options = ProcessOptions(
        max_items=args.max_items,
        combine_mode=CombineMode(args.combine_mode),
        cancel_token=token,
        subject=context["subject"],
        educational_level=context["educational_level"],
        selected_filters=[FilterType.from_name(name) for name in args.filters],
    )

    start_time = time.time()
    exit_code = 0
    try:
        if args.generate_criteria:
            environments = assign_filter_criteria(
                environments,
                CriteriaGenerator(llm_client),
                status,
                subject=context["subject"],
                educational_level=context["educational_level"],
                selected_filters=options.selected_filters,
                cancel_token=token,
            )
        environments = run_enrichment(environments, processor, status, options)
    except OperationCancelled as e:
        logger.warning(f"Enrichment cancelled: {e}")
        if e.partial_result is not None:
            environments = e.partial_result
        exit_code = 130
    except Exception as e:
        logger.error(f"Enrichment failed: {e}", exc_info=True)
        return 1

    write_json(apply_environments(template, environments), args.output)

    logger.info("\n" + "=" * 80)
    logger.info("ENRICHMENT SUMMARY")
    logger.info("=" * 80)
    linked = sum(
        1
        for env in environments
        for resources in (env.materials, env.tools, env.services)
        for r in resources
        if r.wlo_metadata
    )
    logger.info(f"Environments: {len(environments)}")
    logger.info(f"Resources linked to WLO: {linked}")
    logger.info(f"Status lines: {len(status.lines)}")
    logger.info(f"Time: {time.time() - start_time:.2f}s")

    if llm_client:
        usage = llm_client.get_usage_summary()
        logger.info("\n" + "-" * 80)
        logger.info("TOKEN USAGE & COST")
        logger.info("-" * 80)
        logger.info(f"Model: {usage['model']}")
        logger.info(f"Total tokens: {usage['total_tokens']:,}")
        logger.info(f"Estimated cost: ${usage['estimated_cost_usd']:.4f}")

    logger.info(f"Output file: {args.output}")
    logger.info("=" * 80)
    return exit_code


if __name__ == "__main__":
    sys.exit(main())

"""CLI for language-model template completion and learning-flow generation.

Usage:
    # Complete or adapt an existing template
    python -m template_agent.cli.complete_template \
        --input templates/bruchrechnen.json \
        --instructions "Ergänze eine Gruppenarbeitsphase" \
        --output output/bruchrechnen.completed.json

    # Generate a new template from a description
    python -m template_agent.cli.complete_template \
        --instructions "Doppelstunde Photosynthese, Klasse 7" \
        --output output/photosynthese.json

    # Also link WLO materials to every activity role
    python -m template_agent.cli.complete_template \
        --instructions "Doppelstunde Photosynthese, Klasse 7" \
        --output output/photosynthese.json \
        --suggest-content
"""

import argparse
import logging
import signal
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from tqdm import tqdm

from template_agent import config
from template_agent.enrichers.content_suggester import ContentSuggester, apply_role_assignments
from template_agent.enrichers.resource_processor import ProcessOptions
from template_agent.exceptions import (
    LLMClientError,
    MissingCredentialError,
    OperationCancelled,
    TemplateValidationFailed,
)
from template_agent.generators.template_generator import complete_template, generate_learning_flow
from template_agent.utils.cancellation import CancellationToken
from template_agent.utils.file_io import read_json, write_json
from template_agent.utils.llm_client import LLMClient
from template_agent.utils.logging_config import configure_logging
from template_agent.utils.status import StatusLog
from template_agent.wlo.search_client import WLOSearchClient, WLOSearchConfig

logger = logging.getLogger(__name__)

load_dotenv()


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Complete a didactic template or generate a new one",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--input",
        type=Path,
        default=None,
        help="Template to complete; omit to generate a new learning flow",
    )
    instructions = parser.add_mutually_exclusive_group(required=True)
    instructions.add_argument("--instructions", help="Instructions for the model")
    instructions.add_argument(
        "--instructions-file", type=Path, help="File containing the instructions"
    )
    parser.add_argument("--output", required=True, type=Path, help="Output JSON file path")
    parser.add_argument("--model", default=config.LLM_MODEL, help="Language model name")
    parser.add_argument(
        "--suggest-content",
        action="store_true",
        help="Search WLO materials for every activity role of the result",
    )
    parser.add_argument(
        "--endpoint",
        default=config.WLO_ENDPOINT,
        help="PRODUCTION, STAGING or a full REST base URL (with --suggest-content)",
    )
    parser.add_argument(
        "--log-level",
        default=config.LOG_LEVEL.upper(),
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )
    parser.add_argument("--log-file", type=Path, default=None, help="Optional log file")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    args = parse_args(argv)

    configure_logging(
        level=getattr(logging, args.log_level),
        log_file=args.log_file,
        json_format=config.LOG_FORMAT == "json",
        console_output=True,
    )

    if args.instructions_file is not None:
        user_input = args.instructions_file.read_text(encoding="utf-8")
    else:
        user_input = args.instructions

    try:
        llm_client = LLMClient(model=args.model)
    except MissingCredentialError as e:
        logger.error(str(e))
        return 1

    token = CancellationToken()
    signal.signal(signal.SIGINT, lambda signum, frame: token.cancel("Interrupted by user"))
    status = StatusLog(echo=tqdm.write)

    try:
        if args.input is not None:
            if not args.input.exists():
                logger.error(f"Input file not found: {args.input}")
                return 1
            template, message = complete_template(
                read_json(args.input),
                user_input,
                llm_client=llm_client,
                cancel_token=token,
                status=status,
            )
            if template is None:
                logger.error(message)
                return 1
            logger.info(message)
        else:
            template = generate_learning_flow(
                user_input, llm_client, cancel_token=token, status=status
            )
    except OperationCancelled as e:
        logger.warning(f"Cancelled: {e}")
        return 130
    except TemplateValidationFailed as e:
        logger.error(f"Generated template is invalid: {e}")
        return 1
    except LLMClientError as e:
        logger.error(str(e))
        return 1

    exit_code = 0
    if args.suggest_content:
        suggester = ContentSuggester(
            llm_client,
            WLOSearchClient(
                WLOSearchConfig(endpoint=args.endpoint, proxy_url=config.WLO_PROXY_URL)
            ),
        )
        try:
            result = suggester.process_activities(
                template, status, ProcessOptions(cancel_token=token)
            )
        except OperationCancelled as e:
            logger.warning(f"Content search cancelled: {e}")
            result = e.partial_result
            exit_code = 130
        if result is not None:
            template = apply_role_assignments(template, result)

    write_json(template, args.output)

    usage = llm_client.get_usage_summary()
    logger.info(
        f"Tokens: {usage['total_tokens']:,}, estimated cost: ${usage['estimated_cost_usd']:.4f}"
    )
    logger.info(f"Output file: {args.output}")
    return exit_code


if __name__ == "__main__":
    sys.exit(main())

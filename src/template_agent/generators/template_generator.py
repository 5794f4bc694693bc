"""Model-driven template workflows.

- complete_template: complete or adapt an existing template following the
  user's instructions (one JSON-mode call, then validation and repair)
- generate_learning_flow: build a new template from a description, then
  enhance every environment with concrete resources (one call per
  environment, run concurrently)
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional, Tuple

from template_agent.config import BATCH_SIZE
from template_agent.exceptions import (
    LLMClientError,
    MissingCredentialError,
    TemplateValidationFailed,
)
from template_agent.models.resources import ResourceKind
from template_agent.prompts.template_prompts import (
    COMPLETION_SYSTEM_PROMPT,
    ENVIRONMENT_SYSTEM_PROMPT,
    FLOW_GENERATION_PROMPT,
    FLOW_SYSTEM_PROMPT,
    build_completion_prompt,
    build_environment_prompt,
)
from template_agent.utils.cancellation import CancellationToken
from template_agent.utils.ids import IdAllocator, uuid_allocator
from template_agent.utils.llm_client import LLMClient
from template_agent.utils.logging_config import pipeline_stage_logger
from template_agent.utils.status import StatusSink, null_status
from template_agent.validators.normalizer import normalize_resource
from template_agent.validators.template_validator import (
    parse_json_text,
    validate_and_repair,
    validate_document,
)

logger = logging.getLogger(__name__)

COMPLETION_MAX_TOKENS = 12000
FLOW_MAX_TOKENS = 12000
ENVIRONMENT_MAX_TOKENS = 4000


def complete_template(
    template: Dict[str, Any],
    user_input: str,
    llm_client: Optional[LLMClient] = None,
    api_key: Optional[str] = None,
    model: Optional[str] = None,
    cancel_token: Optional[CancellationToken] = None,
    status: StatusSink = null_status,
    allocate_id: IdAllocator = uuid_allocator,
) -> Tuple[Optional[Dict[str, Any]], str]:
    """Complete or adapt ``template`` according to ``user_input``.

    Args:
        template: Current template document
        user_input: Free-form instructions from the user
        llm_client: Client to use; built from ``api_key``/``model`` if None
        api_key: OpenAI API key, used only when no client is given
        model: Model name, used only when no client is given
        cancel_token: Optional cancellation token
        status: Status sink for progress lines
        allocate_id: Id allocator used when the answer needs repair

    Returns:
        (template, message): the validated template and a success message,
        or None and a description of what went wrong

    Raises:
        OperationCancelled: If the token is triggered
    """
    if llm_client is None:
        try:
            llm_client = LLMClient(api_key=api_key, model=model)
        except MissingCredentialError as e:
            logger.warning(str(e))
            status(f"{e}")
            return None, str(e)

    with pipeline_stage_logger("template_completion", model=llm_client.model):
        status("Sending template to the language model...")
        try:
            raw = llm_client.complete(
                build_completion_prompt(template, user_input),
                system_prompt=COMPLETION_SYSTEM_PROMPT,
                temperature=0.8,
                max_tokens=COMPLETION_MAX_TOKENS,
                json_mode=True,
                cancel_token=cancel_token,
            )
        except LLMClientError as e:
            status("Template completion failed")
            return None, f"Template completion failed: {e}"

        if not raw.strip():
            status("No answer from the language model")
            return None, "No answer from the language model"

        result = validate_and_repair(raw, allocate_id)
        if not result.ok:
            message = f"Model answer could not be used: {result.error.describe()}"
            status(message)
            return None, message

    status("Template completed")
    return result.template.to_document(), "Template completed successfully"


def _parse_object(raw: str, what: str) -> Dict[str, Any]:
    data, _, error = parse_json_text(raw)
    if error is not None:
        raise TemplateValidationFailed(f"Failed to parse {what} as JSON: {error}")
    if not isinstance(data, dict):
        raise TemplateValidationFailed(f"Expected a JSON object for {what}")
    return data


class LearningFlowGenerator:
    """Generate a new template from a free-form description.

    Args:
        llm_client: Language model client
        allocate_id: Id allocator for resources and environments without ids
        max_workers: Number of environment enhancement calls run at once
    """

    def __init__(
        self,
        llm_client: LLMClient,
        allocate_id: IdAllocator = uuid_allocator,
        max_workers: int = BATCH_SIZE,
    ):
        self.llm_client = llm_client
        self.allocate_id = allocate_id
        self.max_workers = max_workers

    def generate(
        self,
        user_input: str,
        cancel_token: Optional[CancellationToken] = None,
        status: StatusSink = null_status,
    ) -> Dict[str, Any]:
        """Generate and validate a learning flow.

        Returns:
            Validated template document

        Raises:
            TemplateValidationFailed: If an answer is not JSON or the final
                template does not match the schema (issues listed as
                ``path: message``)
            OperationCancelled: If the token is triggered
            LLMClientError: If a model call fails after all retries
        """
        with pipeline_stage_logger("learning_flow", model=self.llm_client.model) as stage_log:
            status("Generating learning flow...")
            raw = self.llm_client.complete(
                f"{FLOW_GENERATION_PROMPT}\n\nUser requirements: {user_input}\n\n"
                "Please return a complete JSON response that matches the specified schema exactly.",
                system_prompt=FLOW_SYSTEM_PROMPT,
                max_tokens=FLOW_MAX_TOKENS,
                json_mode=True,
                cancel_token=cancel_token,
            )
            flow = _parse_object(raw, "learning flow")

            environments = [e for e in flow.get("environments") or [] if isinstance(e, dict)]
            status(f"Enhancing {len(environments)} environment(s)...")
            stage_log.info(f"Enhancing {len(environments)} environment(s)")

            enhanced: List[Dict[str, Any]] = []
            if environments:
                with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                    # map() yields in input order and re-raises the first failure
                    enhanced = list(
                        executor.map(
                            lambda env: self.enhance_environment(env, cancel_token),
                            environments,
                        )
                    )

            final = dict(flow)
            final.update(
                {
                    "environments": enhanced,
                    "actors": flow.get("actors") or [],
                    "influence_factors": flow.get("influence_factors") or [],
                    "implementation_notes": flow.get("implementation_notes") or [],
                    "related_patterns": flow.get("related_patterns") or [],
                    "sources": flow.get("sources") or [],
                    "feedback": flow.get("feedback") or {"comments": []},
                }
            )

            template = validate_document(final).raise_for_error()

        status("Learning flow generated")
        return template.to_document()

    def enhance_environment(
        self,
        environment: Dict[str, Any],
        cancel_token: Optional[CancellationToken] = None,
    ) -> Dict[str, Any]:
        """Ask the model for concrete resources of one environment.

        The environment keeps its id, name and description; generated
        resources get allocated ids and ``source = manual``.
        """
        raw = self.llm_client.complete(
            build_environment_prompt(environment)
            + "\nPlease return a complete JSON response that matches the specified schema exactly.",
            system_prompt=ENVIRONMENT_SYSTEM_PROMPT,
            max_tokens=ENVIRONMENT_MAX_TOKENS,
            json_mode=True,
            cancel_token=cancel_token,
        )
        enhanced = _parse_object(raw, f"environment \"{environment.get('name', '')}\"")

        result = dict(enhanced)
        result.update(
            {
                "id": environment.get("id") or enhanced.get("id") or self.allocate_id("ENV"),
                "name": environment.get("name") or enhanced.get("name") or "Unnamed Environment",
                "description": environment.get("description")
                or enhanced.get("description")
                or "No description provided",
            }
        )
        for kind in ResourceKind:
            resources = [
                normalize_resource(resource, kind, self.allocate_id)
                for resource in enhanced.get(kind.list_field) or []
            ]
            result[kind.list_field] = [r for r in resources if r is not None]
        return result


def generate_learning_flow(
    user_input: str,
    llm_client: LLMClient,
    allocate_id: IdAllocator = uuid_allocator,
    cancel_token: Optional[CancellationToken] = None,
    status: StatusSink = null_status,
) -> Dict[str, Any]:
    """Generate a new template; see LearningFlowGenerator.generate."""
    generator = LearningFlowGenerator(llm_client, allocate_id)
    return generator.generate(user_input, cancel_token, status)

"""Turn loosely structured model output into a validated template.

Model answers are accepted either as bare JSON or wrapped in a markdown
```json fenced block. Outcomes are returned as values: a template, or a
structured parse/schema error.
"""

import json
import logging
import re
from typing import Any, List, Optional, Tuple

from pydantic import ValidationError

from template_agent.utils.ids import IdAllocator, uuid_allocator
from template_agent.validators.normalizer import normalize_template
from template_agent.validators.schema import (
    FieldIssue,
    TemplateDocument,
    TemplateValidationError,
    TemplateValidationResult,
)

logger = logging.getLogger(__name__)

JSON_BLOCK_PATTERN = re.compile(r"```json\s*([\s\S]*?)```", re.IGNORECASE)


def extract_json_block(text: str) -> Optional[str]:
    """Inner text of the first ```json fenced block, or None."""
    match = JSON_BLOCK_PATTERN.search(text or "")
    return match.group(1).strip() if match else None


def parse_json_text(raw_text: str) -> Tuple[Optional[Any], bool, Optional[str]]:
    """Parse JSON directly, then from a fenced block.

    Returns:
        (data, from_code_block, error message); data is None on failure
    """
    try:
        return json.loads(raw_text), False, None
    except (TypeError, ValueError) as e:
        direct_error = str(e)

    block = extract_json_block(raw_text)
    if block is None:
        return None, False, f"Response is not valid JSON: {direct_error}"

    try:
        return json.loads(block), True, None
    except ValueError as e:
        return None, True, f"JSON code block is not valid JSON: {e}"


def issues_from_validation_error(error: ValidationError) -> List[FieldIssue]:
    """Flatten pydantic errors into ``(path, message)`` issues."""
    issues = []
    for detail in error.errors():
        path = ".".join(str(part) for part in detail["loc"]) or "<root>"
        issues.append(FieldIssue(path=path, message=detail["msg"]))
    return issues


def validate_document(data: Any) -> TemplateValidationResult:
    """Validate an already-parsed document against the template schema."""
    if not isinstance(data, dict):
        return TemplateValidationResult(
            error=TemplateValidationError(
                kind="schema",
                message="Template must be a JSON object",
                issues=[
                    FieldIssue(
                        path="<root>",
                        message=f"expected an object, got {type(data).__name__}",
                    )
                ],
            )
        )

    try:
        template = TemplateDocument.model_validate(data)
    except ValidationError as e:
        issues = issues_from_validation_error(e)
        logger.warning(
            f"Template failed schema validation with {len(issues)} issue(s)",
            extra={"issues": [issue.model_dump() for issue in issues[:10]]},
        )
        return TemplateValidationResult(
            error=TemplateValidationError(
                kind="schema",
                message=f"Template does not match the schema ({len(issues)} issue(s))",
                issues=issues,
            )
        )

    return TemplateValidationResult(template=template)


def validate(raw_text: str) -> TemplateValidationResult:
    """Parse and validate a model answer.

    Steps:
        1. Parse the text as JSON
        2. Otherwise parse the inner text of a ```json fenced block
        3. Validate the parsed value against the template schema

    Args:
        raw_text: Raw model output

    Returns:
        TemplateValidationResult with either ``template`` or ``error`` set.
        Raw JSON and the same JSON inside a fenced block give equal
        templates.

    Example:
        >>> result = validate("not json at all")
        >>> result.error.kind
        'parse'
    """
    data, from_code_block, parse_error = parse_json_text(raw_text)
    if parse_error is not None:
        logger.warning(f"Could not parse model output: {parse_error[:200]}")
        return TemplateValidationResult(
            error=TemplateValidationError(kind="parse", message=parse_error),
            from_code_block=from_code_block,
        )

    if from_code_block:
        logger.info("Parsed template from a JSON code block")

    result = validate_document(data)
    result.from_code_block = from_code_block
    return result


def validate_and_repair(
    raw_text: str, allocate_id: IdAllocator = uuid_allocator
) -> TemplateValidationResult:
    """Like ``validate``, but a schema failure gets one repair attempt.

    The parsed answer is run through ``normalize_template`` (defaults for
    missing sections, ids, resource fields) and validated again. Parse
    errors are returned unchanged.
    """
    result = validate(raw_text)
    if result.ok or result.error.kind == "parse":
        return result

    data, from_code_block, _ = parse_json_text(raw_text)
    repaired = validate_document(normalize_template(data, allocate_id))
    repaired.from_code_block = from_code_block
    if repaired.ok:
        logger.info(f"Repaired template with {len(result.error.issues)} schema issue(s)")
        return repaired
    return result

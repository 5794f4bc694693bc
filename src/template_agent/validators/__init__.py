"""Template schema, validation/repair of model output and normalization."""

from template_agent.validators.normalizer import normalize_template
from template_agent.validators.schema import (
    Environment,
    FieldIssue,
    TemplateDocument,
    TemplateValidationError,
    TemplateValidationResult,
)
from template_agent.validators.template_validator import (
    extract_json_block,
    validate,
    validate_and_repair,
    validate_document,
)

__all__ = [
    "Environment",
    "FieldIssue",
    "TemplateDocument",
    "TemplateValidationError",
    "TemplateValidationResult",
    "extract_json_block",
    "normalize_template",
    "validate",
    "validate_and_repair",
    "validate_document",
]

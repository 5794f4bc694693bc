"""Language-model workflows that produce whole templates."""

from template_agent.generators.template_generator import (
    LearningFlowGenerator,
    complete_template,
    generate_learning_flow,
)

__all__ = ["LearningFlowGenerator", "complete_template", "generate_learning_flow"]

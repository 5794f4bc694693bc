"""Prompt builders for filter criteria, template completion and flow generation."""

from template_agent.prompts import filter_prompts, template_prompts

__all__ = ["filter_prompts", "template_prompts"]

"""Prompts for task validation."""

from .validate import build_validation_prompt

__all__ = [
    "build_validation_prompt",
]

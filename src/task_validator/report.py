"""Report generation for validation results."""

import json
import logging
import os
from dataclasses import asdict, is_dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from . import BusinessRule, Change, Priority, ValidationResult, __version__

logger = logging.getLogger(__name__)

LOW_SCORE_THRESHOLD = 0.5
MAX_NEXT_STEPS_RULES = 3


def to_jsonable(obj: Any) -> Any:
    """Convert dataclasses and enums into plain JSON-compatible values."""
    if is_dataclass(obj) and not isinstance(obj, type):
        return to_jsonable(asdict(obj))
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, dict):
        return {k: to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_jsonable(v) for v in obj]
    return obj


def format_percentage(score: float) -> str:
    return f"{score * 100:.1f}%"


def generate_analysis(result: ValidationResult) -> dict[str, list[str]]:
    """Strengths, weaknesses and next steps derived from a result."""
    strengths: list[str] = []
    weaknesses: list[str] = []
    next_steps: list[str] = []

    if result.implemented_rules:
        strengths.append(f"{len(result.implemented_rules)} rules implemented")
        high = [r for r in result.implemented_rules if r.priority == Priority.HIGH]
        if high:
            strengths.append(f"{len(high)} high priority rules implemented")

    if result.missing_rules:
        weaknesses.append(f"{len(result.missing_rules)} rules not implemented")
        high = [r for r in result.missing_rules if r.priority == Priority.HIGH]
        if high:
            weaknesses.append(f"{len(high)} high priority rules pending")

    if result.completeness_score < LOW_SCORE_THRESHOLD:
        weaknesses.append("Low completeness score (< 50%)")

    for rule in [r for r in result.missing_rules if r.priority == Priority.HIGH][:MAX_NEXT_STEPS_RULES]:
        next_steps.append(f"Implement: {rule.description}")

    for suggestion in result.suggestions:
        next_steps.append(suggestion)

    return {"strengths": strengths, "weaknesses": weaknesses, "next_steps": next_steps}


def generate_report(result: ValidationResult) -> dict[str, Any]:
    """
    Build the report document for a validation result.

    Args:
        result: ValidationResult to report on

    Returns:
        JSON-compatible report dict
    """
    summary = to_jsonable(result.summary)
    summary["completeness_score"] = result.completeness_score
    summary["percentage"] = format_percentage(result.completeness_score)

    return {
        "task_id": result.task_id,
        "branch_name": result.branch_name,
        "timestamp": result.timestamp,
        "summary": summary,
        "implemented_rules": to_jsonable(result.implemented_rules),
        "missing_rules": to_jsonable(result.missing_rules),
        "suggestions": list(result.suggestions),
        "analysis_summary": result.analysis_summary,
        "analysis": generate_analysis(result),
    }


def breakdown_by_priority(result: ValidationResult) -> dict[str, dict[str, int]]:
    breakdown = {}
    for priority in Priority:
        implemented = sum(1 for r in result.implemented_rules if r.priority == priority)
        missing = sum(1 for r in result.missing_rules if r.priority == priority)
        breakdown[priority.value] = {
            "total": implemented + missing,
            "implemented": implemented,
            "missing": missing,
        }
    return breakdown


def breakdown_by_category(result: ValidationResult) -> dict[str, dict[str, Any]]:
    categories: dict[str, dict[str, Any]] = {}
    rules: list[BusinessRule] = [*result.implemented_rules, *result.missing_rules]

    for rule in rules:
        entry = categories.setdefault(
            rule.category or "uncategorized",
            {"total": 0, "implemented": 0, "missing": 0, "rules": []},
        )
        entry["total"] += 1
        entry["implemented" if rule.implemented else "missing"] += 1
        entry["rules"].append(
            {
                "id": rule.id,
                "description": rule.description,
                "priority": rule.priority.value,
                "implemented": rule.implemented,
                "confidence": rule.confidence,
                "evidence": rule.evidence,
            }
        )

    return categories


def build_detailed_report(result: ValidationResult) -> dict[str, Any]:
    """Report plus metadata and per-priority / per-category breakdowns."""
    report = generate_report(result)
    report["metadata"] = {
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "validator_version": __version__,
    }
    report["rules_breakdown"] = {
        "by_priority": breakdown_by_priority(result),
        "by_category": breakdown_by_category(result),
    }
    return report


def report_filename(task_id: str, prefix: str = "validation-report") -> str:
    timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%f")
    safe_id = (task_id or "task").replace("/", "-")
    return f"{prefix}-{safe_id}-{timestamp}.json"


def save_report(report: dict[str, Any], output_dir: str, filename: str | None = None) -> str:
    """
    Write a report as indented JSON.

    Args:
        report: Report dict (from generate_report or build_detailed_report)
        output_dir: Directory to write into (created if missing)
        filename: Optional file name

    Returns:
        Path of the written file

    Raises:
        OSError: If the report cannot be written
    """
    os.makedirs(output_dir, exist_ok=True)
    path = os.path.join(output_dir, filename or report_filename(report.get("task_id", "")))
    with open(path, "w", encoding="utf-8") as f:
        json.dump(report, f, indent=2, default=str)
    logger.info("Validation report saved to %s", path)
    return path


def format_changes(changes: list[Change]) -> str:
    """One line per change for terminal output."""
    if not changes:
        return "No changes found."

    lines = [f"{len(changes)} changed file(s):"]
    for change in sorted(changes, key=lambda c: c.file_path):
        lines.append(
            f"  {change.change_type.value:<9} +{change.additions} -{change.deletions}"
            f"  {change.file_path} [{change.origin.value}]"
        )
    return "\n".join(lines)


def format_validation_result(result: ValidationResult, title: str = "", base_branch: str = "") -> str:
    """
    Format a validation result for display.

    Args:
        result: ValidationResult to format
        title: Task title
        base_branch: Branch the changes were compared against

    Returns:
        Formatted text
    """
    lines = [
        "# Validation Report",
        "",
        f"**Task:** {title} ({result.task_id})" if title else f"**Task:** {result.task_id}",
        f"**Branch:** {result.branch_name}",
    ]
    if base_branch:
        lines.append(f"**Base:** {base_branch}")

    lines.append(f"**Completeness:** {format_percentage(result.completeness_score)}")
    lines.append(
        f"**Rules:** {result.summary.implemented_count}/{result.summary.total_rules} implemented"
    )
    if result.summary.high_priority_missing:
        lines.append(f"**High priority missing:** {result.summary.high_priority_missing}")
    lines.append("")

    if result.implemented_rules:
        lines.append("## Implemented")
        lines.append("")
        for rule in result.implemented_rules:
            lines.append(f"- {rule.id}: {rule.description} (confidence {rule.confidence:.0%})")
            if rule.evidence:
                lines.append(f"  Evidence: {rule.evidence}")
        lines.append("")

    if result.missing_rules:
        lines.append("## Missing")
        lines.append("")
        for rule in result.missing_rules:
            lines.append(f"- {rule.id}: {rule.description} ({rule.priority.value})")
        lines.append("")

    if result.suggestions:
        lines.append("## Suggestions")
        lines.append("")
        for suggestion in result.suggestions:
            lines.append(f"- {suggestion}")
        lines.append("")

    if result.analysis_summary:
        lines.append("## Summary")
        lines.append("")
        lines.append(result.analysis_summary)
        lines.append("")

    return "\n".join(lines)


def format_summary(result: ValidationResult) -> str:
    """
    Format a brief summary for terminal output.

    Args:
        result: ValidationResult to summarize

    Returns:
        Brief summary string
    """
    return "\n".join(
        [
            f"Completeness: {format_percentage(result.completeness_score)}",
            f"Rules: {result.summary.implemented_count} implemented, "
            f"{result.summary.missing_count} missing, "
            f"{result.summary.high_priority_missing} high priority missing",
        ]
    )

"""Model invocation and response parsing for task validation."""

import asyncio
import json
import logging
import os
import re
import shutil
from dataclasses import replace
from datetime import datetime, timezone

from . import (
    AgentResponse,
    BusinessRule,
    Change,
    Priority,
    RuleAnalysis,
    TaskRules,
    ValidationResult,
    ValidationSummary,
)
from .prompts import build_validation_prompt

logger = logging.getLogger(__name__)

# Model CLI commands - extend this dict to add new models
# Note: gemini requires empty string after -p to read prompt from stdin
MODEL_COMMANDS: dict[str, list[str]] = {
    "claude": ["claude", "-p"],
    "gemini": ["gemini", "-p", ""],  # empty arg is workaround for stdin input
}

DEFAULT_MODEL = "claude"

# Default timeout for model invocation (5 minutes)
DEFAULT_TIMEOUT = 300

DEFAULT_ATTEMPTS = 2

NOT_ANALYZED_EVIDENCE = "Rule was not analyzed by the agent"

CODE_FENCE_PATTERN = re.compile(r"```(?:json)?\n?")


class ValidationError(RuntimeError):
    """The model could not be invoked."""


def check_model_available(model: str) -> bool:
    """Check if a model's CLI is available."""
    if model not in MODEL_COMMANDS:
        return False
    cmd = MODEL_COMMANDS[model][0]
    return shutil.which(cmd) is not None


def preflight_check(models: list[str]) -> list[str]:
    """Check which models are available, return list of missing ones."""
    missing = []
    for model in models:
        if not check_model_available(model):
            missing.append(model)
    return missing


async def run_model(model: str, prompt: str, timeout: int = DEFAULT_TIMEOUT) -> str:
    """
    Invoke model via CLI, piping prompt through stdin.

    Args:
        model: Model name (must be in MODEL_COMMANDS)
        prompt: Full prompt text to send
        timeout: Timeout in seconds

    Returns:
        Model's response text

    Raises:
        ValueError: If model not supported
        TimeoutError: If model doesn't respond in time
        RuntimeError: If model invocation fails
    """
    if model not in MODEL_COMMANDS:
        raise ValueError(f"Unknown model: {model}. Available: {list(MODEL_COMMANDS.keys())}")

    cmd = MODEL_COMMANDS[model]

    # Remove CLAUDECODE env var to allow nested claude invocation
    env = {k: v for k, v in os.environ.items() if k != "CLAUDECODE"}

    proc = await asyncio.create_subprocess_exec(
        *cmd,
        stdin=asyncio.subprocess.PIPE,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        env=env,
    )

    try:
        stdout, stderr = await asyncio.wait_for(
            proc.communicate(prompt.encode()),
            timeout=timeout,
        )
    except TimeoutError:
        raise TimeoutError(f"Model {model} timed out after {timeout}s") from None
    finally:
        # Also reached when an outer deadline cancels us
        if proc.returncode is None:
            proc.kill()

    if proc.returncode != 0:
        raise RuntimeError(f"Model {model} failed: {stderr.decode()}")

    return stdout.decode()


def parse_confidence(value) -> float:
    """Clamp a confidence value to [0, 1]; anything unparseable is 0."""
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return 0.0
    return min(max(confidence, 0.0), 1.0)


def parse_rule_analysis(data: dict) -> RuleAnalysis:
    return RuleAnalysis(
        rule_id=str(data.get("ruleId", data.get("rule_id", ""))),
        implemented=bool(data.get("implemented", False)),
        confidence=parse_confidence(data.get("confidence")),
        evidence=str(data.get("evidence") or ""),
        suggestion=str(data.get("suggestion") or ""),
    )


def fallback_response() -> AgentResponse:
    """Zero-confidence result used when the response cannot be parsed."""
    return AgentResponse(
        analysis=[],
        overall_completeness=0.0,
        general_suggestions=["Error processing the agent response. Check the logs."],
        summary="Analysis failed because the agent response could not be parsed.",
    )


def strip_code_fences(content: str) -> str:
    return CODE_FENCE_PATTERN.sub("", content).strip()


def parse_agent_response(content: str) -> AgentResponse:
    """
    Parse model response into an AgentResponse.

    Never raises: malformed output yields the zero-confidence fallback.

    Args:
        content: Raw model response text

    Returns:
        Parsed AgentResponse
    """
    cleaned = strip_code_fences(content)

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.error("Error parsing agent response: %s", e)
        return fallback_response()

    if not isinstance(data, dict):
        logger.error("Invalid agent response: expected a JSON object")
        return fallback_response()

    analysis = data.get("analysis")
    if not isinstance(analysis, list):
        logger.error("Invalid agent response: missing or invalid analysis array")
        return fallback_response()

    completeness = data.get("overallCompleteness")
    if isinstance(completeness, bool) or not isinstance(completeness, (int, float)):
        logger.error("Invalid agent response: missing or invalid overallCompleteness")
        return fallback_response()

    suggestions = data.get("generalSuggestions")
    if not isinstance(suggestions, list):
        suggestions = []

    return AgentResponse(
        analysis=[parse_rule_analysis(a) for a in analysis if isinstance(a, dict)],
        overall_completeness=float(completeness),
        general_suggestions=[str(s) for s in suggestions],
        summary=str(data.get("summary") or ""),
    )


def build_validation_result(
    task_rules: TaskRules,
    branch_name: str,
    agent_response: AgentResponse,
) -> ValidationResult:
    """
    Split the rules into implemented and missing using the model's analysis.

    Args:
        task_rules: Rules that were validated
        branch_name: Branch that was validated
        agent_response: Parsed model response

    Returns:
        ValidationResult with summary counts
    """
    by_rule = {a.rule_id: a for a in agent_response.analysis}
    implemented: list[BusinessRule] = []
    missing: list[BusinessRule] = []

    for rule in task_rules.rules:
        analysis = by_rule.get(rule.id)
        if analysis is None:
            logger.info("Rule %s has no analysis from the agent", rule.id)
            missing.append(
                replace(rule, implemented=False, confidence=0.0, evidence=NOT_ANALYZED_EVIDENCE)
            )
            continue

        updated = replace(
            rule,
            implemented=analysis.implemented,
            confidence=analysis.confidence,
            evidence=analysis.evidence,
        )
        if analysis.implemented:
            implemented.append(updated)
        else:
            missing.append(updated)

    summary = ValidationSummary(
        total_rules=len(task_rules.rules),
        implemented_count=len(implemented),
        missing_count=len(missing),
        high_priority_missing=sum(1 for r in missing if r.priority == Priority.HIGH),
    )

    return ValidationResult(
        task_id=task_rules.task_id,
        branch_name=branch_name,
        completeness_score=agent_response.overall_completeness,
        implemented_rules=implemented,
        missing_rules=missing,
        suggestions=list(agent_response.general_suggestions),
        summary=summary,
        analysis_summary=agent_response.summary,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


def is_score_inconsistent(result: ValidationResult) -> bool:
    """High completeness with nothing implemented usually means a confused model."""
    return result.completeness_score > 0.8 and result.summary.implemented_count == 0


async def validate_task(
    task_rules: TaskRules,
    changes: list[Change],
    branch_name: str,
    model: str = DEFAULT_MODEL,
    timeout: int = DEFAULT_TIMEOUT,
    attempts: int = DEFAULT_ATTEMPTS,
) -> tuple[ValidationResult, str, str]:
    """
    Validate a task's rules against its change set with one model.

    Invocation failures are retried; parse failures are not, they fall back
    to a zero-confidence result.

    Args:
        task_rules: Rules to validate
        changes: Change set for the branch
        branch_name: Branch being validated
        model: Model name
        timeout: Per-invocation timeout in seconds
        attempts: Maximum model invocations

    Returns:
        (result, prompt, raw response)

    Raises:
        ValueError: If model not supported
        ValidationError: If every invocation failed
    """
    prompt = build_validation_prompt(task_rules, changes, branch_name)
    logger.info(
        "Prompt for task %s: %d chars, %d rules, %d changes",
        task_rules.task_id,
        len(prompt),
        len(task_rules.rules),
        len(changes),
    )

    last_error: Exception | None = None
    for attempt in range(1, max(attempts, 1) + 1):
        try:
            response = await run_model(model, prompt, timeout)
            break
        except (TimeoutError, RuntimeError) as e:
            last_error = e
            logger.warning("Model %s attempt %d failed: %s", model, attempt, e)
    else:
        raise ValidationError(f"Model invocation failed: {last_error}") from last_error

    agent_response = parse_agent_response(response)
    result = build_validation_result(task_rules, branch_name, agent_response)

    logger.info(
        "Validation completed for task %s: score=%s implemented=%d missing=%d",
        task_rules.task_id,
        result.completeness_score,
        result.summary.implemented_count,
        result.summary.missing_count,
    )
    return result, prompt, response

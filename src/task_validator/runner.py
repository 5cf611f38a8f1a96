"""End-to-end validation run shared by the CLI and the HTTP service."""

import asyncio
import logging
import time
from dataclasses import dataclass, field

from . import Change, TaskRules, ValidationResult
from .analysis_log import AnalysisLogger
from .changes import ChangeSetBuilder
from .git_utils import GitRepository
from .relevance import extract_relevant_paths
from .validator import DEFAULT_ATTEMPTS, DEFAULT_MODEL, DEFAULT_TIMEOUT, validate_task

logger = logging.getLogger(__name__)


@dataclass
class ChangeSet:
    """Changes for one repository plus how they were selected."""

    branch_name: str
    base_branch: str
    relevant_paths: list[str]
    changes: list[Change]
    errors: list[str] = field(default_factory=list)


@dataclass
class ValidationRun:
    """Everything produced by one validation run."""

    change_set: ChangeSet
    result: ValidationResult
    prompt: str
    raw_response: str
    timings: dict[str, float] = field(default_factory=dict)
    log_paths: dict[str, str] = field(default_factory=dict)


def collect_changes(
    repo_path: str,
    base_branch: str,
    task_rules: TaskRules | None = None,
    filter_relevant: bool = True,
) -> ChangeSet:
    """
    Open the repository and build its change set.

    Args:
        repo_path: Any path inside the repository
        base_branch: Branch to compare against
        task_rules: Rules used to derive relevance fragments
        filter_relevant: Set False to include every changed file

    Raises:
        RepositoryStateError: If the repository or branches cannot be resolved
    """
    repository = GitRepository.open(repo_path)
    relevant_paths = []
    if task_rules is not None and filter_relevant:
        relevant_paths = extract_relevant_paths(task_rules)

    builder = ChangeSetBuilder(repository)
    branch_name = repository.current_branch_name()
    changes = builder.get_changes(base_branch, relevant_paths)

    return ChangeSet(
        branch_name=branch_name,
        base_branch=base_branch,
        relevant_paths=relevant_paths,
        changes=changes,
        errors=list(builder.errors),
    )


def attempt_timeout(timeout: float, attempts: int) -> float:
    """Per-attempt model timeout within a run budget of ``timeout`` seconds."""
    return timeout / max(attempts, 1)


async def run_validation(
    task_rules: TaskRules,
    repo_path: str,
    base_branch: str,
    model: str = DEFAULT_MODEL,
    timeout: int = DEFAULT_TIMEOUT,
    logs_dir: str | None = None,
    attempts: int = DEFAULT_ATTEMPTS,
) -> ValidationRun:
    """
    Collect changes, ask the model, and record analysis logs.

    ``timeout`` bounds the model stage of the run as a whole; each model
    attempt gets an equal share of it so a failed attempt can be retried.
    Git queries block, so they run in a worker thread.

    Raises:
        RepositoryStateError: If the repository cannot be used
        ValidationError: If the model could not be invoked
        TimeoutError: If the run exceeds ``timeout``
    """
    started = time.monotonic()
    change_set = await asyncio.to_thread(collect_changes, repo_path, base_branch, task_rules)
    git_time = time.monotonic() - started

    analysis_logger = AnalysisLogger(logs_dir) if logs_dir else None
    log_paths: dict[str, str] = {}
    if analysis_logger:
        log_paths["git_changes"] = analysis_logger.log_git_changes(
            change_set.changes, base_branch, change_set.branch_name
        )

    ai_started = time.monotonic()
    result, prompt, raw_response = await asyncio.wait_for(
        validate_task(
            task_rules,
            change_set.changes,
            change_set.branch_name,
            model=model,
            timeout=attempt_timeout(timeout, attempts),
            attempts=attempts,
        ),
        timeout=timeout,
    )
    ai_time = time.monotonic() - ai_started

    timings = {
        "git_analysis_time": round(git_time, 3),
        "ai_analysis_time": round(ai_time, 3),
        "total_time": round(time.monotonic() - started, 3),
    }

    if analysis_logger:
        log_paths["prompt"] = analysis_logger.log_agent_prompt(prompt, task_rules.task_id)
        log_paths["response"] = analysis_logger.log_agent_response(raw_response, task_rules.task_id)
        log_paths["analysis"] = analysis_logger.log_analysis(
            task_rules,
            change_set.branch_name,
            base_branch,
            change_set.changes,
            result,
            timings,
        )

    return ValidationRun(
        change_set=change_set,
        result=result,
        prompt=prompt,
        raw_response=raw_response,
        timings=timings,
        log_paths=log_paths,
    )

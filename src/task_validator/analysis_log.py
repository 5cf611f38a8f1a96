"""Per-run analysis artifacts: change sets, prompts, responses, results."""

import json
import logging
import os
import time
from datetime import datetime, timezone
from typing import Any

from . import Change, TaskRules, ValidationResult
from .report import to_jsonable

logger = logging.getLogger(__name__)

DEFAULT_LOG_DIR = "logs"


def _stamp() -> int:
    return int(time.time() * 1000)


def _safe(name: str) -> str:
    return (name or "unknown").replace("/", "-")


class AnalysisLogger:
    """
    Writes analysis artifacts under ``log_dir``.

    Every method returns the written path, or an empty string when the write
    failed; a failed write is logged and never interrupts the run.
    """

    def __init__(self, log_dir: str = DEFAULT_LOG_DIR):
        self.log_dir = log_dir

    def _write(self, filename: str, text: str) -> str:
        path = os.path.join(self.log_dir, filename)
        try:
            os.makedirs(self.log_dir, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                f.write(text)
        except OSError as e:
            logger.warning("Could not write %s: %s", path, e)
            return ""
        return path

    def _write_json(self, filename: str, data: Any) -> str:
        return self._write(filename, json.dumps(data, indent=2, default=str))

    def log_git_changes(self, changes: list[Change], base_branch: str, current_branch: str) -> str:
        """Record the change set (without file contents)."""
        data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "base_branch": base_branch,
            "current_branch": current_branch,
            "total_changes": len(changes),
            "changes": [
                {
                    "file_path": c.file_path,
                    "change_type": c.change_type.value,
                    "origin": c.origin.value,
                    "additions": c.additions,
                    "deletions": c.deletions,
                    "diff": c.diff,
                }
                for c in changes
            ],
        }
        return self._write_json(f"git-changes-{_safe(current_branch)}-{_stamp()}.json", data)

    def log_agent_prompt(self, prompt: str, task_id: str) -> str:
        return self._write(f"agent-prompt-{_safe(task_id)}-{_stamp()}.txt", prompt)

    def log_agent_response(self, response: str, task_id: str) -> str:
        return self._write(f"agent-response-{_safe(task_id)}-{_stamp()}.txt", response)

    def log_analysis(
        self,
        task_rules: TaskRules,
        branch_name: str,
        base_branch: str,
        changes: list[Change],
        result: ValidationResult,
        timings: dict[str, float],
    ) -> str:
        """Record the full run: inputs, result, and timings in seconds."""
        data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "task_id": task_rules.task_id,
            "task_title": task_rules.title,
            "branch_name": branch_name,
            "base_branch": base_branch,
            "analysis_details": {
                "rules_analyzed": to_jsonable(task_rules.rules),
                "git_changes": to_jsonable(changes),
                "final_result": to_jsonable(result),
            },
            "performance": timings,
        }
        return self._write_json(f"analysis-{_safe(task_rules.task_id)}-{_stamp()}.json", data)

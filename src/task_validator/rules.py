"""Loading task rule files."""

import json
from datetime import datetime, timezone
from typing import Any

from . import BusinessRule, Priority, TaskRules
from .git_utils import read_file_content

DEFAULT_RULES_FILE = "task-rules.json"


class RulesFileError(ValueError):
    """The rules document is missing or malformed."""


def _get(data: dict, *keys: str, default: Any = None) -> Any:
    """First present key, so both camelCase and snake_case documents load."""
    for key in keys:
        if key in data:
            return data[key]
    return default


def parse_priority(value: Any) -> Priority:
    """Parse priority string to enum; unknown values are treated as medium."""
    if isinstance(value, str):
        try:
            return Priority(value.strip().lower())
        except ValueError:
            pass
    return Priority.MEDIUM


def parse_rule(data: dict) -> BusinessRule:
    criteria = data.get("criteria")
    if not isinstance(criteria, list):
        criteria = []

    try:
        confidence = float(data.get("confidence") or 0)
    except (TypeError, ValueError):
        confidence = 0.0

    return BusinessRule(
        id=str(data.get("id", "")),
        description=str(data.get("description", "")),
        priority=parse_priority(data.get("priority")),
        category=str(data.get("category") or ""),
        implemented=bool(data.get("implemented", False)),
        confidence=confidence,
        evidence=str(data.get("evidence") or ""),
        criteria=[str(c) for c in criteria],
    )


def parse_task_rules(data: Any) -> TaskRules:
    """
    Build TaskRules from a decoded JSON document.

    Raises:
        RulesFileError: If the document is not an object with a ``rules`` list
    """
    if not isinstance(data, dict):
        raise RulesFileError("Rules document must be a JSON object")

    rules = data.get("rules")
    if not isinstance(rules, list):
        raise RulesFileError("Rules document must contain a 'rules' list")

    return TaskRules(
        task_id=str(_get(data, "taskId", "task_id", default="")),
        title=str(data.get("title") or ""),
        description=str(data.get("description") or ""),
        rules=[parse_rule(r) for r in rules if isinstance(r, dict)],
        created_at=_get(data, "createdAt", "created_at"),
        updated_at=_get(data, "updatedAt", "updated_at"),
    )


def load_task_rules(path: str) -> TaskRules:
    """
    Load and parse a rules file.

    Raises:
        RulesFileError: If the file is missing, not JSON, or malformed
    """
    content = read_file_content(path)
    if content is None:
        raise RulesFileError(f"Rules file not found: {path}")

    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise RulesFileError(f"Rules file is not valid JSON: {path}: {e}") from e

    return parse_task_rules(data)


def example_task_rules() -> dict:
    """Sample rules document written by ``task-validator init``."""
    now = datetime.now(timezone.utc).isoformat()
    return {
        "taskId": "TASK-001",
        "title": "Implement user authentication",
        "description": "Create user login and registration",
        "rules": [
            {
                "id": "AUTH-001",
                "category": "api",
                "description": "Implement the login endpoint",
                "priority": "high",
                "criteria": ["Login handler lives in src/api/auth"],
                "implemented": False,
                "confidence": 0,
                "evidence": "",
            },
            {
                "id": "AUTH-002",
                "category": "api",
                "description": "Implement the registration endpoint",
                "priority": "high",
                "implemented": False,
                "confidence": 0,
                "evidence": "",
            },
            {
                "id": "AUTH-003",
                "category": "security",
                "description": "Implement authentication middleware",
                "priority": "medium",
                "implemented": False,
                "confidence": 0,
                "evidence": "",
            },
        ],
        "createdAt": now,
        "updatedAt": now,
    }

"""Derive relevance path fragments from a rule set."""

import re

from . import TaskRules

# Path-like tokens rooted at the conventional source folder
SOURCE_PATH_PATTERN = re.compile(r"src/\S+")

# Rule categories that point at the API layer when no explicit paths are given
API_CATEGORIES = frozenset({"controller", "routes", "api"})
API_PATH = "src/api"


def extract_relevant_paths(task_rules: TaskRules) -> list[str]:
    """
    Collect the path fragments used to filter changed files.

    The first path named in each criterion is used, and these take precedence.
    Without any, rules in an API-ish category (matched exactly) contribute
    ``src/api``. An empty result means no filtering.

    Args:
        task_rules: Rule set for the task

    Returns:
        Unique fragments in first-seen order
    """
    paths: list[str] = []

    for rule in task_rules.rules:
        for criterion in rule.criteria or []:
            if not isinstance(criterion, str):
                continue
            match = SOURCE_PATH_PATTERN.search(criterion)
            if match and match.group() not in paths:
                paths.append(match.group())

    if paths:
        return paths

    for rule in task_rules.rules:
        if rule.category in API_CATEGORIES and API_PATH not in paths:
            paths.append(API_PATH)

    return paths

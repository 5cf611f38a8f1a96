"""Task validation prompt."""

from .. import Change, TaskRules

VALIDATION_PROMPT = """You are an expert in code analysis and implementation validation.
Decide whether the business rules below are implemented by the code changes provided.

## Task

Title: {title}
Description: {description}
Branch: {branch_name}

## Business Rules

{rules_section}

## Code Changes

{changes_section}

## Reading the Diffs

- Lines starting with "-" were removed
- Lines starting with "+" were added
- Lines without a prefix are unchanged context
- A removed line paired with a similar added line is usually a rename or an update

## Instructions

1. Judge every rule against the changes and give a confidence from 0.0 to 1.0
2. Cite specific code from the diffs as evidence
3. For rules that are not implemented, suggest what is still missing
4. Give an overall completeness score from 0.0 to 1.0

Respond ONLY with valid JSON in this format:

{{
  "analysis": [
    {{
      "ruleId": "string",
      "implemented": boolean,
      "confidence": number,
      "evidence": "where the implementation was found",
      "suggestion": "what to do if not implemented"
    }}
  ],
  "overallCompleteness": number,
  "generalSuggestions": ["general suggestions"],
  "summary": "summary of the analysis"
}}
"""

NO_CHANGES = "(no relevant changes found)"


def format_rule(index: int, rule) -> str:
    text = f"{index}. [{rule.priority.value.upper()}] {rule.id} ({rule.category}): {rule.description}"
    if rule.criteria:
        text += "\n   Criteria:"
        for criterion in rule.criteria:
            text += f"\n   - {criterion}"
    return text


def format_change(change: Change) -> str:
    return (
        f"--- File: {change.file_path} ({change.change_type.value}) ---\n"
        f"Additions: {change.additions} | Deletions: {change.deletions}\n"
        f"```diff\n{change.diff}\n```"
    )


def build_validation_prompt(
    task_rules: TaskRules,
    changes: list[Change],
    branch_name: str,
) -> str:
    """
    Build the validation prompt.

    Args:
        task_rules: Rules to validate
        changes: Change set for the branch
        branch_name: Branch being validated

    Returns:
        Complete prompt for model
    """
    rules_section = "\n\n".join(
        format_rule(i, rule) for i, rule in enumerate(task_rules.rules, start=1)
    )
    changes_section = "\n\n".join(format_change(c) for c in changes) or NO_CHANGES

    return VALIDATION_PROMPT.format(
        title=task_rules.title,
        description=task_rules.description,
        branch_name=branch_name,
        rules_section=rules_section,
        changes_section=changes_section,
    )

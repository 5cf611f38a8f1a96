"""Task validator - check business rules against the changes on a branch."""

from dataclasses import dataclass, field
from enum import Enum

__version__ = "0.1.0"


class ChangeType(Enum):
    """How a file differs from the comparison point."""

    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"
    RENAMED = "renamed"


class ChangeOrigin(Enum):
    """Which change stream produced an entry."""

    LOCAL = "local"
    COMMITTED = "committed"


class Priority(Enum):
    """Business rule priority."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class Change:
    """A single file-level change on the branch or in the working tree."""

    file_path: str  # repository-relative, unique within a change set
    change_type: ChangeType
    additions: int = 0
    deletions: int = 0
    content: str = ""
    diff: str = ""
    origin: ChangeOrigin = ChangeOrigin.COMMITTED


@dataclass
class BusinessRule:
    """A rule the task is expected to implement."""

    id: str
    description: str
    priority: Priority = Priority.MEDIUM
    category: str = ""
    implemented: bool = False
    confidence: float = 0.0
    evidence: str = ""
    criteria: list[str] = field(default_factory=list)


@dataclass
class TaskRules:
    """The rule set for one task."""

    task_id: str
    title: str = ""
    description: str = ""
    rules: list[BusinessRule] = field(default_factory=list)
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class RuleAnalysis:
    """Model's verdict for a single rule."""

    rule_id: str
    implemented: bool
    confidence: float = 0.0
    evidence: str = ""
    suggestion: str = ""


@dataclass
class AgentResponse:
    """Parsed model response."""

    analysis: list[RuleAnalysis] = field(default_factory=list)
    overall_completeness: float = 0.0
    general_suggestions: list[str] = field(default_factory=list)
    summary: str = ""


@dataclass
class ValidationSummary:
    """Rule counts for a validation run."""

    total_rules: int = 0
    implemented_count: int = 0
    missing_count: int = 0
    high_priority_missing: int = 0


@dataclass
class ValidationResult:
    """Outcome of validating one task against its changes."""

    task_id: str
    branch_name: str
    completeness_score: float
    implemented_rules: list[BusinessRule] = field(default_factory=list)
    missing_rules: list[BusinessRule] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)
    summary: ValidationSummary = field(default_factory=ValidationSummary)
    analysis_summary: str = ""
    timestamp: str = ""


__all__ = [
    "ChangeType",
    "ChangeOrigin",
    "Priority",
    "Change",
    "BusinessRule",
    "TaskRules",
    "RuleAnalysis",
    "AgentResponse",
    "ValidationSummary",
    "ValidationResult",
]

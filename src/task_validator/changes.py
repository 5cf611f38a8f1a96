"""Change-set extraction: committed and uncommitted changes merged into one list."""

import logging
from dataclasses import replace
from typing import Protocol

from . import Change, ChangeOrigin, ChangeType
from .git_utils import GitCommandError, RepositoryStateError, StatusSets

logger = logging.getLogger(__name__)

PREVIOUS_COMMIT_RANGE = "HEAD~1..HEAD"

# Single-letter name-status codes
STATUS_CHANGE_TYPES: dict[str, ChangeType] = {
    "A": ChangeType.ADDED,
    "M": ChangeType.MODIFIED,
    "D": ChangeType.DELETED,
    "R": ChangeType.RENAMED,
}


class Repository(Protocol):
    """Version-control and filesystem queries the builder relies on."""

    def current_branch_name(self) -> str: ...

    def has_revision(self, revision: str) -> bool: ...

    def status_sets(self) -> StatusSets: ...

    def name_status_diff(self, range_spec: str) -> list[tuple[str, str]]: ...

    def file_diff(self, range_spec: str, file_path: str) -> str: ...

    def working_tree_diff(self, file_path: str) -> str: ...

    def file_content_at_revision(self, revision: str, file_path: str) -> str: ...

    def exists(self, file_path: str) -> bool: ...

    def read_text(self, file_path: str) -> str: ...


def map_git_status(status: str) -> ChangeType:
    """Map a name-status letter to a change type; unknown codes count as modified."""
    return STATUS_CHANGE_TYPES.get(status[:1].upper(), ChangeType.MODIFIED)


def is_relevant(file_path: str, relevant_paths: list[str] | None) -> bool:
    """
    Check a path against the relevance fragments.

    Matching is deliberately loose: a fragment contained in the path, the path
    contained in a fragment, or the path starting with a fragment all count.
    No fragments means everything is relevant.
    """
    if not relevant_paths:
        return True
    return any(
        fragment in file_path or file_path in fragment or file_path.startswith(fragment)
        for fragment in relevant_paths
    )


def count_line_changes(diff: str) -> tuple[int, int]:
    """
    Count added and removed lines in diff text.

    For real unified diffs only lines inside hunks are counted, so the
    ``+++``/``---`` file headers are skipped. Synthesized diffs have no hunk
    headers and every ``+``/``-`` line counts.
    """
    lines = diff.split("\n")
    has_hunks = any(line.startswith("@@") for line in lines)

    additions = 0
    deletions = 0
    in_hunk = not has_hunks
    for line in lines:
        if has_hunks:
            if line.startswith("diff --git"):
                in_hunk = False
                continue
            if line.startswith("@@"):
                in_hunk = True
                continue
        if not in_hunk:
            continue
        if line.startswith("+"):
            additions += 1
        elif line.startswith("-"):
            deletions += 1
    return additions, deletions


def _split_lines(content: str) -> list[str]:
    lines = content.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return lines


def synthesize_diff(content: str, prefix: str) -> str:
    """Prefix every line of ``content`` with ``+`` or ``-``."""
    return "\n".join(prefix + line for line in _split_lines(content))


def merge_changes(committed: list[Change], local: list[Change]) -> list[Change]:
    """
    Merge the two change streams by file path.

    Local entries win for content, diff and change type because they reflect
    the file as it is now; line counts from both streams are summed.
    """
    merged: dict[str, Change] = {change.file_path: change for change in committed}

    for change in local:
        existing = merged.get(change.file_path)
        if existing is None:
            merged[change.file_path] = change
            continue
        merged[change.file_path] = replace(
            change,
            additions=existing.additions + change.additions,
            deletions=existing.deletions + change.deletions,
        )

    return list(merged.values())


class ChangeSetBuilder:
    """
    Builds the change set for one validation run.

    The builder never mutates the repository. Per-file failures are logged and
    collected on ``errors``; only repository-level failures raise.
    """

    def __init__(self, repository: Repository):
        self.repository = repository
        self.errors: list[str] = []

    def get_changes(
        self,
        base_branch: str,
        relevant_paths: list[str] | None = None,
    ) -> list[Change]:
        """
        Collect everything that differs from ``base_branch``.

        Args:
            base_branch: Branch or revision to compare against
            relevant_paths: Path fragments to restrict to (empty means all files)

        Returns:
            Changes with unique file paths, in no particular order

        Raises:
            RepositoryStateError: If the current branch or the comparison range
                cannot be resolved
        """
        if not base_branch:
            raise ValueError("base_branch must not be empty")

        self.errors = []
        current_branch = self.repository.current_branch_name()
        logger.info("Getting changes from %s to %s", base_branch, current_branch)

        committed = self.get_committed_changes(base_branch, current_branch, relevant_paths)
        local = self.get_local_changes(relevant_paths)
        changes = merge_changes(committed, local)

        logger.info(
            "Found %d changed files (%d committed, %d local)",
            len(changes),
            len(committed),
            len(local),
        )
        return changes

    def comparison_range(self, base_branch: str, current_branch: str) -> str | None:
        """
        Range for the committed stream.

        On the base branch itself the latest commit is the change set. Returns
        None when that commit has no parent.
        """
        if base_branch == current_branch:
            if not self.repository.has_revision("HEAD~1"):
                logger.info("No parent commit on %s, no committed changes", current_branch)
                return None
            return PREVIOUS_COMMIT_RANGE

        if not self.repository.has_revision(base_branch):
            raise RepositoryStateError(f"Base branch not found: {base_branch}")
        return f"{base_branch}...{current_branch}"

    def get_committed_changes(
        self,
        base_branch: str,
        current_branch: str,
        relevant_paths: list[str] | None = None,
    ) -> list[Change]:
        range_spec = self.comparison_range(base_branch, current_branch)
        if range_spec is None:
            return []

        try:
            entries = self.repository.name_status_diff(range_spec)
        except GitCommandError as e:
            raise RepositoryStateError(f"Cannot list changes for {range_spec}: {e}") from e

        changes = []
        for status, file_path in entries:
            if not is_relevant(file_path, relevant_paths):
                logger.debug("Skipping irrelevant file: %s", file_path)
                continue

            try:
                content = self.repository.file_content_at_revision(current_branch, file_path)
            except GitCommandError as e:
                self._record(file_path, e)
                content = ""

            try:
                diff = self.repository.file_diff(range_spec, file_path)
            except GitCommandError as e:
                self._record(file_path, e)
                continue

            additions, deletions = count_line_changes(diff)
            changes.append(
                Change(
                    file_path=file_path,
                    change_type=map_git_status(status),
                    additions=additions,
                    deletions=deletions,
                    content=content,
                    diff=diff,
                    origin=ChangeOrigin.COMMITTED,
                )
            )
            logger.debug("Processed committed file: %s (%s)", file_path, status)

        return changes

    def get_local_changes(self, relevant_paths: list[str] | None = None) -> list[Change]:
        try:
            status = self.repository.status_sets()
        except GitCommandError as e:
            raise RepositoryStateError(f"Cannot read working tree status: {e}") from e

        new_files = set(status.not_added) | set(status.created)
        changes = []

        for file_path in status.all_files():
            if not is_relevant(file_path, relevant_paths):
                logger.debug("Skipping irrelevant file: %s", file_path)
                continue

            change = self._local_change(file_path, file_path in new_files)
            if change is not None:
                changes.append(change)
                logger.debug("Processed local file: %s (%s)", file_path, change.change_type.value)

        return changes

    def _local_change(self, file_path: str, is_new: bool) -> Change | None:
        if not self.repository.exists(file_path):
            try:
                previous = self.repository.file_content_at_revision("HEAD", file_path)
            except GitCommandError as e:
                self._record(file_path, e)
                previous = ""
            change_type = ChangeType.DELETED
            content = ""
            diff = synthesize_diff(previous, "-")
        else:
            try:
                content = self.repository.read_text(file_path)
            except (OSError, UnicodeDecodeError) as e:
                self._record(file_path, e)
                return None

            if is_new:
                change_type = ChangeType.ADDED
                diff = synthesize_diff(content, "+")
            else:
                change_type = ChangeType.MODIFIED
                try:
                    diff = self.repository.working_tree_diff(file_path)
                except GitCommandError as e:
                    self._record(file_path, e)
                    return None

        additions, deletions = count_line_changes(diff)
        return Change(
            file_path=file_path,
            change_type=change_type,
            additions=additions,
            deletions=deletions,
            content=content,
            diff=diff,
            origin=ChangeOrigin.LOCAL,
        )

    def _record(self, file_path: str, error: Exception) -> None:
        message = f"{file_path}: {error}"
        logger.warning("Error processing file %s", message)
        self.errors.append(message)

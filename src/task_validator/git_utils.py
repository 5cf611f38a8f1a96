"""Git utilities for querying repository state."""

import subprocess
from dataclasses import dataclass, field
from pathlib import Path


class GitCommandError(RuntimeError):
    """A single git invocation failed."""


class RepositoryStateError(RuntimeError):
    """The repository cannot be used: missing, invalid, or not on a named branch."""


def run_git(args: list[str], cwd: str | Path) -> str:
    """
    Run a git command and return its stdout.

    Args:
        args: Arguments after ``git``
        cwd: Working directory to run git in

    Returns:
        Command output as string

    Raises:
        GitCommandError: If git is missing or exits non-zero
    """
    cmd = ["git", *args]
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            cwd=cwd,
        )
    except OSError as e:
        raise GitCommandError(f"Could not run {' '.join(cmd)}: {e}") from e

    if result.returncode != 0:
        raise GitCommandError(f"{' '.join(cmd)} failed: {result.stderr.strip()}")

    return result.stdout


@dataclass
class StatusSets:
    """Working-tree status partitioned the way the change builder consumes it."""

    modified: list[str] = field(default_factory=list)
    not_added: list[str] = field(default_factory=list)  # untracked
    created: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    staged: list[str] = field(default_factory=list)

    def all_files(self) -> list[str]:
        """Union of every set, deduplicated, first-seen order."""
        seen: dict[str, None] = {}
        for group in (self.modified, self.not_added, self.created, self.deleted, self.staged):
            for path in group:
                seen.setdefault(path, None)
        return list(seen)


def parse_status(output: str) -> StatusSets:
    """
    Parse ``git status --porcelain=v1 -z`` output.

    Renamed and copied entries carry their original path in the following
    NUL-separated token, which is skipped.
    """
    sets = StatusSets()
    tokens = output.split("\0")
    i = 0
    while i < len(tokens):
        entry = tokens[i]
        i += 1
        if len(entry) < 4:
            continue

        x, y, path = entry[0], entry[1], entry[3:]
        if x in "RC":
            i += 1  # original path

        if x == "?" and y == "?":
            sets.not_added.append(path)
            continue
        if x == "!":
            continue

        if x == "A" or y == "A":
            sets.created.append(path)
        if x == "M" or y == "M" or "U" in (x, y):
            sets.modified.append(path)
        if x == "D" or y == "D":
            sets.deleted.append(path)
        if x not in " ?":
            sets.staged.append(path)

    return sets


def parse_name_status(output: str) -> list[tuple[str, str]]:
    """
    Parse ``git diff --name-status -z`` output into (status letter, path) pairs.

    Renames and copies report their destination path.
    """
    pairs: list[tuple[str, str]] = []
    tokens = [t for t in output.split("\0") if t]
    i = 0
    while i < len(tokens):
        code = tokens[i]
        i += 1
        if code[0] in "RC":
            if i + 1 >= len(tokens):
                break
            path = tokens[i + 1]
            i += 2
        else:
            if i >= len(tokens):
                break
            path = tokens[i]
            i += 1
        pairs.append((code[0], path))
    return pairs


@dataclass(frozen=True)
class GitRepository:
    """Read-only handle on a git working tree, rooted at its top level."""

    path: Path

    @classmethod
    def open(cls, path: str | Path) -> "GitRepository":
        """
        Resolve the repository containing ``path``.

        Raises:
            RepositoryStateError: If the path is missing or not inside a repository
        """
        candidate = Path(path).expanduser()
        if not candidate.is_dir():
            raise RepositoryStateError(f"Repository path not found: {candidate}")
        try:
            top = run_git(["rev-parse", "--show-toplevel"], candidate).strip()
        except GitCommandError as e:
            raise RepositoryStateError(f"Not a git repository: {candidate}") from e
        return cls(Path(top))

    def current_branch_name(self) -> str:
        """
        Name of the checked-out branch.

        Raises:
            RepositoryStateError: If HEAD is detached or git fails
        """
        try:
            name = run_git(["symbolic-ref", "--short", "-q", "HEAD"], self.path).strip()
        except GitCommandError as e:
            raise RepositoryStateError(f"Cannot determine current branch: {e}") from e
        if not name:
            raise RepositoryStateError("Cannot determine current branch: HEAD is detached")
        return name

    def has_revision(self, revision: str) -> bool:
        """Check whether a revision resolves to a commit."""
        try:
            run_git(["rev-parse", "--verify", "--quiet", f"{revision}^{{commit}}"], self.path)
        except GitCommandError:
            return False
        return True

    def status_sets(self) -> StatusSets:
        output = run_git(["status", "--porcelain=v1", "-z", "--untracked-files=all"], self.path)
        return parse_status(output)

    def name_status_diff(self, range_spec: str) -> list[tuple[str, str]]:
        output = run_git(["diff", "--name-status", "-z", range_spec], self.path)
        return parse_name_status(output)

    def file_diff(self, range_spec: str, file_path: str) -> str:
        return run_git(["diff", range_spec, "--", file_path], self.path)

    def working_tree_diff(self, file_path: str) -> str:
        """Diff between HEAD and the working tree for one path."""
        return run_git(["diff", "HEAD", "--", file_path], self.path)

    def file_content_at_revision(self, revision: str, file_path: str) -> str:
        return run_git(["show", f"{revision}:{file_path}"], self.path)

    def exists(self, file_path: str) -> bool:
        return (self.path / file_path).exists()

    def read_text(self, file_path: str) -> str:
        """Read a working-tree file. Raises OSError or UnicodeDecodeError."""
        with open(self.path / file_path, encoding="utf-8") as f:
            return f.read()


def read_file_content(path: str) -> str | None:
    """
    Read file content, returning None if file doesn't exist.

    Args:
        path: Path to file

    Returns:
        File content or None
    """
    try:
        with open(path, encoding="utf-8") as f:
            return f.read()
    except FileNotFoundError:
        return None

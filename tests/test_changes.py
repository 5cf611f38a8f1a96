"""Tests for change-set extraction - merge rules, relevance and diff synthesis."""

import pytest

from task_validator import Change, ChangeOrigin, ChangeType
from task_validator.changes import (
    PREVIOUS_COMMIT_RANGE,
    ChangeSetBuilder,
    count_line_changes,
    is_relevant,
    map_git_status,
    merge_changes,
    synthesize_diff,
)
from task_validator.git_utils import GitCommandError, RepositoryStateError, StatusSets


class FakeRepository:
    """In-memory stand-in for GitRepository."""

    def __init__(
        self,
        branch="feature/x",
        revisions=("main", "HEAD~1"),
        name_status=None,
        diffs=None,
        contents=None,
        status=None,
        files=None,
        working_diffs=None,
    ):
        self.branch = branch
        self.revisions = set(revisions)
        self.name_status = name_status or {}
        self.diffs = diffs or {}
        self.contents = contents or {}
        self.status = status or StatusSets()
        self.files = files or {}
        self.working_diffs = working_diffs or {}
        self.ranges: list[str] = []

    def current_branch_name(self):
        if self.branch is None:
            raise RepositoryStateError("HEAD is detached")
        return self.branch

    def has_revision(self, revision):
        return revision in self.revisions

    def status_sets(self):
        return self.status

    def name_status_diff(self, range_spec):
        self.ranges.append(range_spec)
        return self.name_status.get(range_spec, [])

    def file_diff(self, range_spec, file_path):
        try:
            return self.diffs[(range_spec, file_path)]
        except KeyError:
            raise GitCommandError(f"no diff for {file_path}") from None

    def working_tree_diff(self, file_path):
        try:
            return self.working_diffs[file_path]
        except KeyError:
            raise GitCommandError(f"no working diff for {file_path}") from None

    def file_content_at_revision(self, revision, file_path):
        try:
            return self.contents[(revision, file_path)]
        except KeyError:
            raise GitCommandError(f"fatal: path '{file_path}' does not exist in '{revision}'") from None

    def exists(self, file_path):
        return file_path in self.files

    def read_text(self, file_path):
        return self.files[file_path]


A_DIFF = """diff --git a/src/api/a.ts b/src/api/a.ts
index 1234567..abcdefg 100644
--- a/src/api/a.ts
+++ b/src/api/a.ts
@@ -1,3 +1,4 @@
 export function a() {
-  return 1;
+  return 2;
+  // updated
 }
"""

THREE_DOT = "main...feature/x"


class TestCountLineChanges:
    def test_real_diff_skips_headers(self):
        assert count_line_changes(A_DIFF) == (2, 1)

    def test_synthesized_diff_counts_every_line(self):
        assert count_line_changes("+a\n+b") == (2, 0)
        assert count_line_changes("-a\n-b\n-c") == (0, 3)

    def test_header_like_content_inside_hunk_counts(self):
        diff = "--- a/f\n+++ b/f\n@@ -1 +1 @@\n---- removed dashes\n++++ added pluses\n"
        assert count_line_changes(diff) == (1, 1)

    def test_empty(self):
        assert count_line_changes("") == (0, 0)

    def test_multiple_file_sections(self):
        diff = A_DIFF + A_DIFF
        assert count_line_changes(diff) == (4, 2)


class TestSynthesizeDiff:
    def test_added(self):
        assert synthesize_diff("a\nb", "+") == "+a\n+b"

    def test_trailing_newline_not_a_line(self):
        assert synthesize_diff("a\nb\n", "+") == "+a\n+b"

    def test_deleted(self):
        assert synthesize_diff("x\ny\n", "-") == "-x\n-y"

    def test_empty_content(self):
        assert synthesize_diff("", "+") == ""


class TestIsRelevant:
    def test_no_fragments_means_everything(self):
        assert is_relevant("anything/at/all.py", [])
        assert is_relevant("anything/at/all.py", None)

    def test_prefix(self):
        assert is_relevant("src/api/login.ts", ["src/api"])

    def test_unrelated(self):
        assert not is_relevant("src/db/models.ts", ["src/api"])

    def test_fragment_anywhere_in_path(self):
        assert is_relevant("other/src/apix", ["src/api"])

    def test_path_inside_fragment(self):
        # Fragment names a file more specifically than the path
        assert is_relevant("src/api", ["src/api/login.ts"])

    def test_any_fragment(self):
        assert is_relevant("src/db/models.ts", ["src/api", "src/db"])


class TestMapGitStatus:
    def test_known_codes(self):
        assert map_git_status("A") == ChangeType.ADDED
        assert map_git_status("M") == ChangeType.MODIFIED
        assert map_git_status("D") == ChangeType.DELETED
        assert map_git_status("R") == ChangeType.RENAMED

    def test_unknown_defaults_to_modified(self):
        assert map_git_status("T") == ChangeType.MODIFIED
        assert map_git_status("") == ChangeType.MODIFIED


class TestMergeChanges:
    def test_local_wins_and_counts_sum(self):
        committed = [
            Change("src/a.ts", ChangeType.MODIFIED, 2, 1, "old", "committed diff", ChangeOrigin.COMMITTED)
        ]
        local = [
            Change("src/a.ts", ChangeType.DELETED, 0, 5, "", "local diff", ChangeOrigin.LOCAL)
        ]

        merged = merge_changes(committed, local)

        assert len(merged) == 1
        change = merged[0]
        assert change.content == ""
        assert change.diff == "local diff"
        assert change.change_type == ChangeType.DELETED
        assert change.additions == 2
        assert change.deletions == 6

    def test_disjoint_entries_kept(self):
        committed = [Change("a", ChangeType.MODIFIED, 1, 0)]
        local = [Change("b", ChangeType.ADDED, 3, 0, origin=ChangeOrigin.LOCAL)]

        merged = {c.file_path: c for c in merge_changes(committed, local)}

        assert set(merged) == {"a", "b"}
        assert merged["a"] == committed[0]
        assert merged["b"] == local[0]

    def test_unique_paths(self):
        committed = [Change(p, ChangeType.MODIFIED, 1, 1) for p in ("a", "b", "c")]
        local = [Change(p, ChangeType.MODIFIED, 1, 1, origin=ChangeOrigin.LOCAL) for p in ("b", "c", "d")]

        paths = [c.file_path for c in merge_changes(committed, local)]

        assert sorted(paths) == ["a", "b", "c", "d"]


class TestChangeSetBuilder:
    def test_end_to_end_scenario(self):
        repo = FakeRepository(
            name_status={THREE_DOT: [("M", "src/api/a.ts"), ("M", "docs/readme.md")]},
            diffs={(THREE_DOT, "src/api/a.ts"): A_DIFF, (THREE_DOT, "docs/readme.md"): A_DIFF},
            contents={("feature/x", "src/api/a.ts"): "export function a() {}\n"},
            status=StatusSets(not_added=["src/api/b.ts", "scratch.txt"]),
            files={"src/api/b.ts": "one\ntwo\nthree\n", "scratch.txt": "x"},
        )

        changes = ChangeSetBuilder(repo).get_changes("main", ["src/api"])
        by_path = {c.file_path: c for c in changes}

        assert set(by_path) == {"src/api/a.ts", "src/api/b.ts"}

        a = by_path["src/api/a.ts"]
        assert a.change_type == ChangeType.MODIFIED
        assert (a.additions, a.deletions) == (2, 1)
        assert a.origin == ChangeOrigin.COMMITTED

        b = by_path["src/api/b.ts"]
        assert b.change_type == ChangeType.ADDED
        assert (b.additions, b.deletions) == (3, 0)
        assert b.origin == ChangeOrigin.LOCAL
        assert b.diff == "+one\n+two\n+three"

    def test_three_dot_range_for_feature_branch(self):
        repo = FakeRepository()
        ChangeSetBuilder(repo).get_changes("main")
        assert repo.ranges == [THREE_DOT]

    def test_same_branch_uses_previous_commit(self):
        repo = FakeRepository(
            branch="main",
            name_status={PREVIOUS_COMMIT_RANGE: [("A", "src/new.py")]},
            diffs={(PREVIOUS_COMMIT_RANGE, "src/new.py"): "--- /dev/null\n+++ b/src/new.py\n@@ -0,0 +1 @@\n+x\n"},
            contents={("main", "src/new.py"): "x\n"},
        )

        changes = ChangeSetBuilder(repo).get_changes("main")

        assert repo.ranges == [PREVIOUS_COMMIT_RANGE]
        assert len(changes) == 1
        assert changes[0].change_type == ChangeType.ADDED
        assert changes[0].additions == 1

    def test_same_branch_without_parent_commit_is_empty(self):
        repo = FakeRepository(branch="main", revisions=("main",))
        assert ChangeSetBuilder(repo).get_changes("main") == []
        assert repo.ranges == []

    def test_unknown_base_branch_is_fatal(self):
        repo = FakeRepository(revisions=())
        with pytest.raises(RepositoryStateError, match="Base branch not found"):
            ChangeSetBuilder(repo).get_changes("develop")

    def test_detached_head_is_fatal(self):
        repo = FakeRepository(branch=None)
        with pytest.raises(RepositoryStateError):
            ChangeSetBuilder(repo).get_changes("main")

    def test_empty_base_branch_rejected(self):
        with pytest.raises(ValueError):
            ChangeSetBuilder(FakeRepository()).get_changes("")

    def test_clean_repository_yields_empty_list(self):
        assert ChangeSetBuilder(FakeRepository()).get_changes("main") == []

    def test_committed_deleted_file_keeps_empty_content(self):
        diff = "--- a/src/gone.py\n+++ /dev/null\n@@ -1,2 +0,0 @@\n-a\n-b\n"
        repo = FakeRepository(
            name_status={THREE_DOT: [("D", "src/gone.py")]},
            diffs={(THREE_DOT, "src/gone.py"): diff},
        )
        builder = ChangeSetBuilder(repo)

        changes = builder.get_changes("main")

        assert len(changes) == 1
        assert changes[0].change_type == ChangeType.DELETED
        assert changes[0].content == ""
        assert changes[0].deletions == 2
        assert len(builder.errors) == 1
        assert "src/gone.py" in builder.errors[0]

    def test_committed_diff_failure_omits_file(self):
        repo = FakeRepository(
            name_status={THREE_DOT: [("M", "src/a.py"), ("M", "src/b.py")]},
            diffs={(THREE_DOT, "src/b.py"): "+x"},
            contents={("feature/x", "src/a.py"): "a", ("feature/x", "src/b.py"): "b"},
        )
        builder = ChangeSetBuilder(repo)

        changes = builder.get_changes("main")

        assert [c.file_path for c in changes] == ["src/b.py"]
        assert builder.errors

    def test_local_deleted_file_synthesis(self):
        repo = FakeRepository(
            status=StatusSets(deleted=["src/old.py"]),
            contents={("HEAD", "src/old.py"): "line one\nline two\n"},
        )

        changes = ChangeSetBuilder(repo).get_changes("main")

        assert len(changes) == 1
        change = changes[0]
        assert change.change_type == ChangeType.DELETED
        assert change.content == ""
        assert change.diff == "-line one\n-line two"
        assert (change.additions, change.deletions) == (0, 2)
        assert change.origin == ChangeOrigin.LOCAL

    def test_local_added_file_synthesis(self):
        repo = FakeRepository(
            status=StatusSets(not_added=["notes.txt"]),
            files={"notes.txt": "a\nb"},
        )

        changes = ChangeSetBuilder(repo).get_changes("main")

        assert changes[0].diff == "+a\n+b"
        assert (changes[0].additions, changes[0].deletions) == (2, 0)

    def test_staged_new_file_is_added(self):
        repo = FakeRepository(
            status=StatusSets(created=["src/new.py"], staged=["src/new.py"]),
            files={"src/new.py": "x\n"},
        )

        changes = ChangeSetBuilder(repo).get_changes("main")

        assert len(changes) == 1
        assert changes[0].change_type == ChangeType.ADDED

    def test_local_modified_uses_working_tree_diff(self):
        repo = FakeRepository(
            status=StatusSets(modified=["src/api/a.ts"], staged=["src/api/a.ts"]),
            files={"src/api/a.ts": "export function a() {}\n"},
            working_diffs={"src/api/a.ts": A_DIFF},
        )

        changes = ChangeSetBuilder(repo).get_changes("main")

        assert len(changes) == 1
        assert changes[0].change_type == ChangeType.MODIFIED
        assert changes[0].diff == A_DIFF
        assert (changes[0].additions, changes[0].deletions) == (2, 1)

    def test_path_in_both_streams_is_merged(self):
        repo = FakeRepository(
            name_status={THREE_DOT: [("M", "src/api/a.ts")]},
            diffs={(THREE_DOT, "src/api/a.ts"): A_DIFF},
            contents={("feature/x", "src/api/a.ts"): "committed content"},
            status=StatusSets(modified=["src/api/a.ts"]),
            files={"src/api/a.ts": "working content"},
            working_diffs={"src/api/a.ts": "@@ -1 +1 @@\n-committed content\n+working content\n"},
        )

        changes = ChangeSetBuilder(repo).get_changes("main")

        assert len(changes) == 1
        change = changes[0]
        assert change.content == "working content"
        assert change.origin == ChangeOrigin.LOCAL
        assert (change.additions, change.deletions) == (3, 2)

    def test_local_relevance_filter(self):
        repo = FakeRepository(
            status=StatusSets(not_added=["src/api/b.ts", "src/db/models.ts"]),
            files={"src/api/b.ts": "b", "src/db/models.ts": "m"},
        )

        changes = ChangeSetBuilder(repo).get_changes("main", ["src/api"])

        assert [c.file_path for c in changes] == ["src/api/b.ts"]

    def test_unreadable_local_file_is_skipped(self):
        class Unreadable(FakeRepository):
            def read_text(self, file_path):
                raise PermissionError(f"denied: {file_path}")

        repo = Unreadable(status=StatusSets(not_added=["secret.txt"]), files={"secret.txt": ""})
        builder = ChangeSetBuilder(repo)

        assert builder.get_changes("main") == []
        assert "secret.txt" in builder.errors[0]

    def test_name_status_failure_is_fatal(self):
        class Broken(FakeRepository):
            def name_status_diff(self, range_spec):
                raise GitCommandError("fatal: bad revision")

        with pytest.raises(RepositoryStateError):
            ChangeSetBuilder(Broken()).get_changes("main")

    def test_errors_reset_between_runs(self):
        repo = FakeRepository(
            name_status={THREE_DOT: [("M", "src/a.py")]},
        )
        builder = ChangeSetBuilder(repo)
        builder.get_changes("main")
        assert builder.errors

        repo.name_status = {}
        builder.get_changes("main")
        assert builder.errors == []

"""Tests for the git-backed history provider."""

from datetime import datetime, timedelta, timezone

import pytest

from cochange_heat.exceptions import ErrorCode, TemporalError
from cochange_heat.temporal.git_extractor import GitHistoryProvider, count_loc, parse_log_output


class TestParseLogOutput:
    def test_parses_blocks(self):
        raw = (
            "COMMIT:aaa:1700000000\n"
            "\n"
            "lib/a.ex\n"
            "lib/b.ex\n"
            "\n"
            "COMMIT:bbb:1700000100\n"
            "\n"
            "README.md\n"
        )
        commits = parse_log_output(raw)

        assert [c.hash for c in commits] == ["aaa", "bbb"]
        assert commits[0].files == ("lib/a.ex", "lib/b.ex")
        assert commits[0].timestamp == datetime.fromtimestamp(1700000000, tz=timezone.utc)
        assert commits[1].files == ("README.md",)

    def test_bad_header_dropped(self):
        raw = "COMMIT:aaa:notatime\nfile.py\nCOMMIT:bbb:1700000000\nother.py\n"
        assert [c.hash for c in parse_log_output(raw)] == ["bbb"]

    def test_empty_output(self):
        assert parse_log_output("") == []

    def test_count_loc_skips_blank_lines(self):
        assert count_loc("a = 1\n\n   \nb = 2\n") == 2


class TestErrors:
    def test_missing_repo_raises_temporal_error(self, tmp_path):
        provider = GitHistoryProvider(branch="main")
        now = datetime.now(timezone.utc)
        with pytest.raises(TemporalError) as exc_info:
            provider.fetch(str(tmp_path / "nope"), now - timedelta(days=1), now)
        assert exc_info.value.code in (ErrorCode.CH400, ErrorCode.CH401)


@pytest.fixture
def git_repo(git_repo_builder):
    base = datetime(2024, 3, 1, tzinfo=timezone.utc)
    git_repo_builder.commit(base, {"lib/a.ex": "a\n", "lib/b.ex": "b\n"}, "first")
    git_repo_builder.commit(base + timedelta(hours=1), {"lib/a.ex": "a\na2\n", "lib/b.ex": "b\nb2\n"}, "second")
    git_repo_builder.commit(base + timedelta(days=2), {"README.md": "# readme\n\ntext\n"}, "third")
    return git_repo_builder.path, base


@pytest.mark.git
class TestGitHistoryProvider:
    """Against a throwaway repository with fixed commit dates."""

    def test_fetch_window(self, git_repo):
        repo, base = git_repo
        provider = GitHistoryProvider()
        commits = provider.fetch(str(repo), base, base + timedelta(days=1))

        assert len(commits) == 2
        assert all(set(c.files) == {"lib/a.ex", "lib/b.ex"} for c in commits)
        assert {c.timestamp for c in commits} == {base, base + timedelta(hours=1)}

    def test_resolve_branch(self, git_repo):
        repo, _ = git_repo
        assert GitHistoryProvider().resolve_branch(str(repo)) == "main"
        assert GitHistoryProvider(branch="other").resolve_branch(str(repo)) == "other"

    def test_last_file_touch(self, git_repo):
        repo, base = git_repo
        provider = GitHistoryProvider()
        touched = provider.last_file_touch(str(repo), "lib/a.ex", base, base + timedelta(days=3))
        assert touched == base + timedelta(hours=1)
        assert provider.last_file_touch(str(repo), "lib/a.ex", base + timedelta(days=1), base + timedelta(days=3)) is None

    def test_file_metrics(self, git_repo):
        repo, _ = git_repo
        provider = GitHistoryProvider()
        sizes = provider.file_sizes(str(repo))

        assert sizes["lib/a.ex"] == (5, 2)
        assert sizes["README.md"] == (15, 2)
        assert provider.file_metrics_at(str(repo), "HEAD", "lib/b.ex") == (5, 2)
        assert provider.file_metrics_at(str(repo), "HEAD", "lib") == (None, None)
        assert provider.file_metrics_at(str(repo), "HEAD", "missing.py") == (None, None)

    def test_ignore_file_filters_paths(self, git_repo):
        repo, base = git_repo
        (repo / ".cochangeignore").write_text("README.md\n")
        provider = GitHistoryProvider(filter_ignored=True)
        commits = provider.fetch(str(repo), base, base + timedelta(days=3))

        readme_commit = [c for c in commits if c.timestamp == base + timedelta(days=2)]
        assert readme_commit and readme_commit[0].files == ()

    def test_non_ascii_paths_come_back_verbatim(self, git_repo_builder):
        base = datetime(2024, 3, 1, tzinfo=timezone.utc)
        git_repo_builder.commit(base, {"docs/café.md": "bonjour\n", "docs/b.md": "b\n"}, "accents")
        repo = str(git_repo_builder.path)
        provider = GitHistoryProvider()

        commits = provider.fetch(repo, base, base + timedelta(days=1))

        assert len(commits) == 1
        assert set(commits[0].files) == {"docs/café.md", "docs/b.md"}
        assert provider.last_file_touch(repo, "docs/café.md", base, base + timedelta(days=1)) == base
        assert provider.file_sizes(repo)["docs/café.md"] == (8, 1)
        assert provider.file_metrics_at(repo, "HEAD", "docs/café.md") == (8, 1)

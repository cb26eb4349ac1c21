"""Shared fixtures: temporary git repositories and a controllable clock."""

import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import git
import pytest


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    """Create a fake clock starting at a fixed UTC time."""
    return FakeClock(datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc))


@pytest.fixture
def git_repo():
    """Create a temporary Git repository with one commit on main."""
    with tempfile.TemporaryDirectory() as tmpdir:
        repo_path = Path(tmpdir)
        repo = git.Repo.init(repo_path)

        # Configure git
        repo.config_writer().set_value("user", "name", "Test User").release()
        repo.config_writer().set_value("user", "email", "test@example.com").release()

        (repo_path / "README.md").write_text("# Test Project\n")
        repo.index.add(["README.md"])
        repo.index.commit("Initial commit")
        if repo.active_branch.name != "main":
            repo.active_branch.rename("main")

        yield repo

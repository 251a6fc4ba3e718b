# tests/observers/test_git_watcher.py
from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

git = pytest.importorskip("git")

from livebuild.context.bus import EventBus  # noqa: E402
from livebuild.context.events import ALL_ACTIVITY  # noqa: E402
from livebuild.observers.git_watcher import GitWatcher, read_new_commits  # noqa: E402
from livebuild.state.store import StateStore  # noqa: E402

NOW = datetime(2026, 6, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def repo(tmp_path, monkeypatch):
    for var in ("GIT_AUTHOR_NAME", "GIT_COMMITTER_NAME"):
        monkeypatch.setenv(var, "Test Dev")
    for var in ("GIT_AUTHOR_EMAIL", "GIT_COMMITTER_EMAIL"):
        monkeypatch.setenv(var, "dev@example.com")
    path = tmp_path / "repo-x"
    return git.Repo.init(path)


def _commit(repo, name: str, content: str, message: str) -> str:
    file_path = repo.working_tree_dir + "/" + name
    with open(file_path, "w", encoding="utf-8") as f:
        f.write(content)
    repo.index.add([name])
    return repo.index.commit(message).hexsha


def test_read_new_commits_oldest_first(repo):
    first = _commit(repo, "a.txt", "one\n", "initial commit")
    _commit(repo, "b.txt", "two\nthree\n", "add b\n\nlonger body")
    _commit(repo, "a.txt", "uno\n", "rewrite a")

    activities = read_new_commits(repo.working_tree_dir, first, now=NOW)

    assert [a.commit_message for a in activities] == ["add b", "rewrite a"]
    add_b = activities[0]
    assert add_b.repo == "repo-x"
    assert add_b.files_changed == ("b.txt",)
    assert add_b.additions == 2
    assert add_b.deletions == 0
    assert add_b.branch == repo.active_branch.name
    assert add_b.timestamp == NOW
    assert activities[1].additions == 1
    assert activities[1].deletions == 1


def test_no_last_commit_reads_recent_five(repo):
    for i in range(7):
        _commit(repo, "f.txt", f"{i}\n", f"commit {i}")
    activities = read_new_commits(repo.working_tree_dir, None, now=NOW)
    assert [a.commit_message for a in activities] == [f"commit {i}" for i in range(2, 7)]


def test_empty_repo_has_no_commits(repo):
    assert read_new_commits(repo.working_tree_dir, None, now=NOW) == []


def test_detached_head_branch_is_unknown(repo):
    first = _commit(repo, "a.txt", "1\n", "one")
    _commit(repo, "a.txt", "2\n", "two")
    repo.git.checkout(first)
    _commit(repo, "a.txt", "3\n", "three")
    [activity] = read_new_commits(repo.working_tree_dir, first, now=NOW)
    assert activity.branch == "unknown"


def test_refresh_publishes_and_remembers_last_commit(repo):
    store = StateStore.in_memory()
    bus = EventBus()
    received = []
    bus.subscribe(ALL_ACTIVITY, received.append)
    repo_path = repo.working_tree_dir
    watcher = GitWatcher(bus=bus, state_store=store, repos=[repo_path], clock=lambda: NOW)

    _commit(repo, "a.txt", "1\n", "one")
    head = _commit(repo, "a.txt", "2\n", "two")

    async def scenario():
        first = await watcher.refresh(repo_path)
        second = await watcher.refresh(repo_path)
        return first, second

    first, second = asyncio.run(scenario())

    assert [a.commit_message for a in first] == ["one", "two"]
    assert second == []
    assert received == first
    assert store.load().git_last_commit == {repo_path: head}


def test_start_without_repos_is_a_noop():
    async def scenario():
        watcher = GitWatcher(bus=EventBus(), state_store=StateStore.in_memory(), repos=[])
        watcher.start()
        await watcher.stop()

    asyncio.run(scenario())

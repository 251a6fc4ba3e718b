# src/livebuild/observers/git_watcher.py
"""
GitWatcher: emits a RepositoryActivity for every new commit in the watched
repositories.

Each repo's `.git/logs/HEAD` is watched with watchdog. When it changes, the
commits after the last seen hash are read with GitPython on a worker thread
and published oldest first; the newest hash goes into AppState.git_last_commit.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Set

from git import GitCommandError, InvalidGitRepositoryError, NoSuchPathError, Repo
from watchdog.observers import Observer

from livebuild.context.bus import EventBus
from livebuild.context.events import RepositoryActivity
from livebuild.observers.fs_events import LoopForwardingHandler
from livebuild.managers.utils import spawn
from livebuild.state.store import StateStore

logger = logging.getLogger(__name__)

# commits reported when a repo has no last-seen hash yet
INITIAL_COMMITS = 5


def current_branch(repo: Repo) -> str:
    try:
        return repo.active_branch.name
    except TypeError:
        # detached HEAD
        return "unknown"


def read_new_commits(
    repo_path: str,
    last_commit: Optional[str],
    *,
    now: datetime,
) -> List[RepositoryActivity]:
    """
    Commits after `last_commit` up to HEAD, oldest first. With no known
    hash, or one that is no longer in history, the last few commits are used.
    Blocking; run it off the loop.
    """
    repo = Repo(repo_path)
    if not repo.head.is_valid():
        # no commits yet
        return []

    commits = None
    if last_commit:
        try:
            commits = list(repo.iter_commits(f"{last_commit}..HEAD"))
        except GitCommandError:
            logger.warning(
                "git watcher: %s no longer has %s, falling back to recent commits",
                repo_path,
                last_commit[:7],
            )
    if commits is None:
        commits = list(repo.iter_commits("HEAD", max_count=INITIAL_COMMITS))

    branch = current_branch(repo)
    name = Path(repo_path).name
    activities: List[RepositoryActivity] = []
    for commit in reversed(commits):
        stats = commit.stats
        activities.append(
            RepositoryActivity(
                timestamp=now,
                repo=name,
                commit_hash=commit.hexsha,
                commit_message=commit.summary,
                files_changed=tuple(str(p) for p in stats.files),
                additions=int(stats.total.get("insertions", 0)),
                deletions=int(stats.total.get("deletions", 0)),
                branch=branch,
            )
        )
    return activities


class GitWatcher:
    def __init__(
        self,
        *,
        bus: EventBus,
        state_store: StateStore,
        repos: Iterable[str],
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.bus = bus
        self.state_store = state_store
        self.repos = [str(Path(r).expanduser()) for r in repos]
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._observer: Optional[Observer] = None
        self._locks: Dict[str, asyncio.Lock] = {}
        self._tasks: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------
    def start(self) -> None:
        if not self.repos:
            logger.info("git watcher: no repos configured")
            return
        loop = asyncio.get_running_loop()
        observer = Observer()
        watched = 0
        for repo_path in self.repos:
            logs_dir = Path(repo_path) / ".git" / "logs"
            if not logs_dir.is_dir():
                logger.warning("git watcher: %s has no .git/logs, skipping", repo_path)
                continue
            handler = LoopForwardingHandler(
                loop,
                lambda _kind, _path, repo_path=repo_path: self._schedule(repo_path),
                lambda path: path.name == "HEAD",
            )
            observer.schedule(handler, str(logs_dir), recursive=False)
            self._locks[repo_path] = asyncio.Lock()
            watched += 1
            logger.info("git watcher: watching %s", repo_path)
        if not watched:
            return
        observer.start()
        self._observer = observer

    async def stop(self) -> None:
        if self._observer is not None:
            self._observer.stop()
            await asyncio.to_thread(self._observer.join, 5.0)
            self._observer = None
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        logger.info("git watcher: stopped")

    def _schedule(self, repo_path: str) -> None:
        spawn(self.refresh(repo_path), self._tasks, what=f"git watcher refresh of {repo_path}")

    # ------------------------------------------------------------------
    # work
    # ------------------------------------------------------------------
    async def refresh(self, repo_path: str) -> List[RepositoryActivity]:
        """
        Publish commits added since the last refresh of `repo_path`.
        Refreshes of the same repo are serialised.
        """
        lock = self._locks.setdefault(repo_path, asyncio.Lock())
        async with lock:
            last = self.state_store.load().git_last_commit.get(repo_path)
            try:
                activities = await asyncio.to_thread(
                    read_new_commits, repo_path, last, now=self._clock()
                )
            except (GitCommandError, InvalidGitRepositoryError, NoSuchPathError, OSError):
                logger.exception("git watcher: failed to read commits from %s", repo_path)
                return []

            for activity in activities:
                self.bus.publish(activity)
                logger.info(
                    "git watcher: commit %s in %s: %s",
                    activity.commit_hash[:7],
                    activity.repo,
                    activity.commit_message,
                )

            if activities:
                state = self.state_store.load()
                state.git_last_commit[repo_path] = activities[-1].commit_hash
                self.state_store.save(state)
            return activities


__all__ = ["GitWatcher", "INITIAL_COMMITS", "current_branch", "read_new_commits"]

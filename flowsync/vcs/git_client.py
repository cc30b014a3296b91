"""Git operations: clone a branch, stage, commit, push and inspect diffs."""

from __future__ import annotations

import logging
import os
import shutil
import stat
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from urllib.parse import quote, urlsplit, urlunsplit

from git import Actor, Git, GitCommandError, PushInfo, Repo

from flowsync.sync.errors import ConflictError, NoChangesError, ResolutionError
from flowsync.vcs.transport import TransportConfig

log = logging.getLogger(__name__)

PUSH_FAILURE_FLAGS = PushInfo.REJECTED | PushInfo.REMOTE_REJECTED | PushInfo.REMOTE_FAILURE | PushInfo.ERROR


@dataclass
class GitCredentials:
    """Authentication for the remote.

    Username and password (or token) are used for HTTP(S) remotes. A private
    key is used for SSH remotes; passphrase-protected keys must be loaded
    into an ssh agent, the passphrase is not fed to ssh.
    """

    username: str | None = None
    password: str | None = None
    private_key: str | None = None
    passphrase: str | None = None


@dataclass
class WorkingTree:
    """A checked-out branch.

    Use as a context manager to remove temporary clones::

        with client.checkout(url, "main") as tree:
            ...
    """

    repo: Repo
    path: Path
    url: str
    branch: str
    created_branch: bool = False
    is_temp_clone: bool = False

    def __enter__(self) -> WorkingTree:
        return self

    def __exit__(self, *exc) -> None:
        self.cleanup()

    def cleanup(self) -> None:
        """Remove the temporary clone directory, if applicable."""
        self.repo.close()
        if self.is_temp_clone and self.path.exists():
            shutil.rmtree(self.path, ignore_errors=True)


@dataclass
class FileStat:
    """Per-file line counts of a diff."""

    file: str
    additions: int = 0
    deletions: int = 0
    changes: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"file": self.file, "additions": self.additions, "deletions": self.deletions, "changes": self.changes}


class GitVersionControlClient:
    """Version-control collaborator backed by GitPython and the git CLI."""

    def __init__(
        self,
        credentials: GitCredentials | None = None,
        transport: TransportConfig | None = None,
        git_config: dict[str, Any] | None = None,
    ):
        self.credentials = credentials or GitCredentials()
        self.transport = transport
        self.git_config = git_config or {}
        self._key_file: str | None = None

    # --- Checkout ---

    def branch_exists(self, url: str, branch: str) -> bool:
        try:
            output = Git().ls_remote("--heads", self._auth_url(url), env=self._env())
        except GitCommandError as e:
            raise ResolutionError(f"Cannot reach repository {_redact(url)}: {_stderr(e)}") from e
        ref = f"refs/heads/{branch}"
        return any(line.split("\t")[-1] == ref for line in output.splitlines())

    def checkout(
        self,
        url: str,
        branch: str,
        workdir: str | Path | None = None,
        depth: int | None = None,
    ) -> WorkingTree:
        """Clone ``branch``, creating it locally when the remote lacks it.

        Raises:
            ResolutionError: The repository or branch cannot be resolved.
        """
        exists = self.branch_exists(url, branch)

        is_temp = workdir is None
        path = Path(tempfile.mkdtemp(prefix="flowsync_")) if is_temp else Path(workdir)

        kwargs: dict[str, Any] = {"env": self._env()}
        if depth:
            kwargs["depth"] = depth
        if exists:
            kwargs["branch"] = branch
        else:
            log.info("Branch %s does not exist, creating it", branch)

        try:
            repo = Repo.clone_from(self._auth_url(url), path, **kwargs)
        except GitCommandError as e:
            if is_temp:
                shutil.rmtree(path, ignore_errors=True)
            raise ResolutionError(f"Cannot clone {_redact(url)} ({branch}): {_stderr(e)}") from e

        self._apply_git_config(repo)

        if not exists:
            if repo.head.is_valid():
                repo.git.checkout("-b", branch)
            else:
                # Empty remote: point the unborn HEAD at the requested branch
                repo.git.symbolic_ref("HEAD", f"refs/heads/{branch}")

        return WorkingTree(
            repo=repo,
            path=path,
            url=url,
            branch=branch,
            created_branch=not exists,
            is_temp_clone=is_temp,
        )

    def _apply_git_config(self, repo: Repo) -> None:
        if not self.git_config:
            return

        with repo.config_writer() as writer:
            for key, value in self.git_config.items():
                parts = key.split(".")
                if len(parts) < 2:
                    log.warning(
                        "Invalid git config key %s, expected 'section.name' or 'section.subsection.name'",
                        key,
                    )
                    continue

                section = parts[0].lower()
                name = parts[-1]
                if len(parts) > 2:
                    section = f'{section} "{".".join(parts[1:-1])}"'

                if value is None or (isinstance(value, str) and not value.strip()):
                    if writer.has_option(section, name):
                        writer.remove_option(section, name)
                    log.info("Unset git config %s", key)
                    continue

                if isinstance(value, (list, tuple)):
                    if writer.has_option(section, name):
                        writer.remove_option(section, name)
                    for item in value:
                        writer.add_value(section, name, _config_value(item))
                else:
                    writer.set_value(section, name, _config_value(value))
                log.debug("Set git config %s", key)

    # --- Commit and push ---

    def stage_all(self, tree: WorkingTree, pattern: str = ".") -> None:
        """Stage additions, modifications and deletions under ``pattern``."""
        try:
            tree.repo.git.add("--all", "--", pattern or ".")
        except GitCommandError as e:
            if "did not match any files" not in _stderr(e):
                raise
            log.debug("Nothing to stage under %s", pattern)

    def has_staged_changes(self, tree: WorkingTree) -> bool:
        if not tree.repo.head.is_valid():
            return bool(tree.repo.git.ls_files("--cached").strip())
        return bool(tree.repo.git.diff("--cached", "--name-only").strip())

    def commit(self, tree: WorkingTree, message: str, author: tuple[str, str] | None = None) -> str:
        """Commit the index and return the new commit id.

        Raises:
            NoChangesError: Nothing is staged.
        """
        if not self.has_staged_changes(tree):
            raise NoChangesError("No changes to commit.")

        name, email = author or ("flowsync", "flowsync@localhost")
        actor = Actor(name, email)
        env = {"GIT_COMMITTER_NAME": name, "GIT_COMMITTER_EMAIL": email}
        with tree.repo.git.custom_environment(**env):
            tree.repo.git.commit("-m", message, author=f"{actor.name} <{actor.email}>")
        commit_id = tree.repo.head.commit.hexsha
        log.info("Committed %s on %s", commit_id[:12], tree.branch)
        return commit_id

    def push(self, tree: WorkingTree) -> None:
        """Push HEAD to the tree's branch.

        Raises:
            ConflictError: The remote rejected the push or git failed.
        """
        refspec = f"HEAD:refs/heads/{tree.branch}"
        try:
            with tree.repo.git.custom_environment(**self._env()):
                infos = tree.repo.remote("origin").push(refspec=refspec)
        except GitCommandError as e:
            raise ConflictError(f"Push to {tree.branch} failed: {_stderr(e)}") from e

        for info in infos:
            if info.flags & PUSH_FAILURE_FLAGS:
                raise ConflictError(f"Push to {tree.branch} rejected: {info.summary.strip()}")
        log.info("Pushed %s", tree.branch)

    # --- Inspection ---

    def diff_stats(self, tree: WorkingTree, cached: bool = True) -> list[FileStat]:
        """Per-file added/removed line counts from ``git diff --numstat``.

        Binary files report zero lines. ``changes`` counts lines that were
        replaced, the overlap of additions and deletions.
        """
        args = ["--numstat"]
        if cached:
            args.insert(0, "--cached")
        output = tree.repo.git.diff(*args)

        stats = []
        for line in output.splitlines():
            parts = line.split("\t", 2)
            if len(parts) != 3:
                continue
            added, removed, path = parts
            additions = int(added) if added.isdigit() else 0
            deletions = int(removed) if removed.isdigit() else 0
            stats.append(
                FileStat(
                    file=path,
                    additions=additions,
                    deletions=deletions,
                    changes=min(additions, deletions),
                )
            )
        return sorted(stats, key=lambda s: s.file)

    # --- Transport ---

    def _auth_url(self, url: str) -> str:
        creds = self.credentials
        if not creds.username or not url.startswith(("http://", "https://")):
            return url
        parts = urlsplit(url)
        host = parts.netloc.rsplit("@", 1)[-1]
        userinfo = quote(creds.username, safe="")
        if creds.password:
            userinfo += ":" + quote(creds.password, safe="")
        return urlunsplit((parts.scheme, f"{userinfo}@{host}", parts.path, parts.query, parts.fragment))

    def _env(self) -> dict[str, str]:
        env = {"GIT_TERMINAL_PROMPT": "0"}
        if self.transport is not None:
            env.update(self.transport.env)
        if self.credentials.private_key:
            env["GIT_SSH_COMMAND"] = (
                f"ssh -i {self._private_key_file()} -o IdentitiesOnly=yes "
                "-o StrictHostKeyChecking=no -o UserKnownHostsFile=/dev/null"
            )
        return env

    def _private_key_file(self) -> str:
        if self._key_file is None:
            fd, path = tempfile.mkstemp(prefix="flowsync-key-")
            with os.fdopen(fd, "w") as f:
                key = self.credentials.private_key or ""
                f.write(key if key.endswith("\n") else key + "\n")
            os.chmod(path, stat.S_IRUSR | stat.S_IWUSR)
            self._key_file = path
        return self._key_file

    def close(self) -> None:
        """Remove the temporary private key file, if one was written."""
        if self._key_file and os.path.exists(self._key_file):
            os.unlink(self._key_file)
        self._key_file = None


def _config_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _stderr(e: GitCommandError) -> str:
    return (e.stderr or str(e)).strip()


def _redact(url: str) -> str:
    if "@" in url and "://" in url:
        scheme, rest = url.split("://", 1)
        return f"{scheme}://{rest.rsplit('@', 1)[-1]}"
    return url


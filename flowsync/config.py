"""Run configuration: where the tree lives, which instance to talk to, and how.

Loaded from YAML::

    git:
      url: https://github.com/acme/flows.git
      branch: main
      directory: kestra        # tree directory prefix, optional
    instance:
      url: http://localhost:8080
      tenant: main
    scope: company.team        # or all_scopes: true
    kinds: [definition, file]
    policy:
      source_of_truth: instance
      when_missing_in_source: delete
      on_invalid_content: fail
      protected_scopes: [system]
      dry_run: false

Secrets may be left out of the file and supplied through ``FLOWSYNC_*``
environment variables. Values in the file win.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Mapping

import yaml

from flowsync.models.resources import ResourceKind
from flowsync.sync.errors import ConfigurationError
from flowsync.sync.policy import SyncPolicy, parse_flag, policy_from_dict
from flowsync.sync.scopes import AllScopes, SingleScope

DEFAULT_COMMIT_MESSAGE = "Namespace sync"
DEFAULT_PROTECTED_SCOPES = ["system"]
DEFAULT_ARTIFACTS_DIR = ".flowsync"

ENV_SECRETS = {
    ("git", "username"): "FLOWSYNC_GIT_USERNAME",
    ("git", "password"): "FLOWSYNC_GIT_PASSWORD",
    ("git", "private_key"): "FLOWSYNC_GIT_PRIVATE_KEY",
    ("instance", "username"): "FLOWSYNC_INSTANCE_USERNAME",
    ("instance", "password"): "FLOWSYNC_INSTANCE_PASSWORD",
}


@dataclass
class GitSettings:
    url: str = ""
    branch: str = ""
    directory: str = ""
    depth: int | None = None
    username: str | None = None
    password: str | None = None
    private_key: str | None = None
    passphrase: str | None = None
    trusted_ca_pem_path: str | None = None
    author_name: str = "flowsync"
    author_email: str = "flowsync@localhost"
    commit_message: str = DEFAULT_COMMIT_MESSAGE
    config: dict[str, Any] = field(default_factory=dict)


@dataclass
class InstanceSettings:
    url: str = "http://localhost:8080"
    tenant: str = "main"
    username: str | None = None
    password: str | None = None


@dataclass
class SyncConfig:
    """Everything one run needs."""

    git: GitSettings = field(default_factory=GitSettings)
    instance: InstanceSettings = field(default_factory=InstanceSettings)
    scope: str | None = None
    all_scopes: bool = False
    kinds: list[ResourceKind] = field(default_factory=list)
    policy: SyncPolicy = field(default_factory=lambda: SyncPolicy(protected_scopes=frozenset(DEFAULT_PROTECTED_SCOPES)))
    artifacts_dir: str = DEFAULT_ARTIFACTS_DIR
    workdir: str | None = None

    def validate(self) -> None:
        """Check required settings before any I/O.

        Raises:
            ConfigurationError: The git url, the branch or the scope is missing.
        """
        if not self.git.url:
            raise ConfigurationError("git.url must be set")
        if not self.git.branch:
            raise ConfigurationError("git.branch must be explicitly set")
        if not self.all_scopes and not self.scope:
            raise ConfigurationError("scope must be set unless all_scopes is true")
        if bool(self.instance.username) != bool(self.instance.password):
            raise ConfigurationError("instance.username and instance.password must be set together")

    @property
    def resource_kinds(self) -> list[ResourceKind]:
        if self.kinds:
            return list(self.kinds)
        if self.all_scopes:
            return [ResourceKind.DEFINITION, ResourceKind.FILE, ResourceKind.DASHBOARD]
        return [ResourceKind.DEFINITION, ResourceKind.FILE]

    def scope_strategy(self) -> SingleScope | AllScopes:
        if self.all_scopes:
            return AllScopes()
        return SingleScope(self.scope or "")

    @property
    def tree_prefix(self) -> str:
        return self.git.directory.strip("/")

    def with_dry_run(self, dry_run: bool) -> SyncConfig:
        """Copy of this configuration with the dry-run switch overridden."""
        return replace(self, policy=replace(self.policy, dry_run=dry_run), kinds=list(self.kinds))


def config_from_dict(data: Mapping[str, Any] | None, environ: Mapping[str, str] | None = None) -> SyncConfig:
    """Build a configuration from its mapping form.

    Raises:
        ConfigurationError: A section has the wrong shape or a value is invalid.
    """
    data = dict(data or {})
    environ = os.environ if environ is None else environ

    git_data = _section(data, "git")
    instance_data = _section(data, "instance")
    for (section, name), var in ENV_SECRETS.items():
        target = git_data if section == "git" else instance_data
        if not target.get(name) and environ.get(var):
            target[name] = environ[var]

    git = GitSettings(
        url=str(git_data.get("url") or ""),
        branch=str(git_data.get("branch") or ""),
        directory=str(git_data.get("directory") or ""),
        depth=_int_or_none(git_data.get("depth"), "git.depth"),
        username=git_data.get("username"),
        password=git_data.get("password"),
        private_key=git_data.get("private_key"),
        passphrase=git_data.get("passphrase"),
        trusted_ca_pem_path=git_data.get("trusted_ca_pem_path"),
        author_name=git_data.get("author_name") or "flowsync",
        author_email=git_data.get("author_email") or "flowsync@localhost",
        commit_message=git_data.get("commit_message") or DEFAULT_COMMIT_MESSAGE,
        config=dict(git_data.get("config") or {}),
    )
    instance = InstanceSettings(
        url=str(instance_data.get("url") or "http://localhost:8080"),
        tenant=str(instance_data.get("tenant") or "main"),
        username=instance_data.get("username"),
        password=instance_data.get("password"),
    )

    policy_data = data.get("policy") or {}
    if not isinstance(policy_data, dict):
        raise ConfigurationError("policy must be a mapping")
    policy = policy_from_dict(policy_data, protected_scopes=DEFAULT_PROTECTED_SCOPES)

    return SyncConfig(
        git=git,
        instance=instance,
        scope=data.get("scope") or None,
        all_scopes=parse_flag(data.get("all_scopes"), "all_scopes"),
        kinds=_kinds(data.get("kinds")),
        policy=policy,
        artifacts_dir=str(data.get("artifacts_dir") or DEFAULT_ARTIFACTS_DIR),
        workdir=data.get("workdir"),
    )


def load_config(path: str | Path, environ: Mapping[str, str] | None = None) -> SyncConfig:
    """Load a configuration file. Relative artifact and work directories
    resolve against the file's directory."""
    path = Path(path)
    if not path.is_file():
        raise ConfigurationError(f"Configuration file not found: {path}")
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path} must contain a mapping")

    config = config_from_dict(data, environ)
    base = path.resolve().parent
    if not Path(config.artifacts_dir).is_absolute():
        config.artifacts_dir = str(base / config.artifacts_dir)
    if config.workdir and not Path(config.workdir).is_absolute():
        config.workdir = str(base / config.workdir)
    return config


def _section(data: Mapping[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigurationError(f"{name} must be a mapping")
    return dict(value)


def _kinds(raw) -> list[ResourceKind]:
    if not raw:
        return []
    if isinstance(raw, str):
        raw = [raw]
    kinds = []
    for item in raw:
        try:
            kinds.append(ResourceKind(str(item).strip().upper()))
        except ValueError:
            allowed = ", ".join(k.value.lower() for k in ResourceKind)
            raise ConfigurationError(f"Unknown kind '{item}', expected one of: {allowed}")
    return kinds


def _int_or_none(raw, name: str) -> int | None:
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{name} must be an integer, got '{raw}'")

"""Browser URLs for a remote: SSH to HTTPS conversion and commit links."""

from __future__ import annotations

import re

SSH_URL_PATTERN = re.compile(r"^git@(?:ssh\.)?([^:]+):(?:v\d*/)?(.*)$")


def http_url(git_url: str | None) -> str | None:
    """Return the HTTPS form of a remote URL, without embedded credentials.

    ``git@github.com:org/repo.git`` becomes ``https://github.com/org/repo.git``.
    Azure DevOps SSH remotes gain the ``_git`` segment their web URLs use.
    """
    if not git_url:
        return git_url

    match = SSH_URL_PATTERN.match(git_url)
    if match:
        url = f"{match.group(1)}/{match.group(2)}"
        if "azure.com" in url:
            head, _, repo = url.rpartition("/")
            url = f"{head}/_git/{repo}"
        return f"https://{url}"

    if "@" in git_url:
        return re.sub(r"//[^/]*@", "//", git_url, count=1)
    return git_url


def commit_url(web_url: str | None, branch: str, commit_id: str | None) -> str | None:
    """Link to a commit on the hosting service, or None without a commit."""
    if not commit_id or not web_url:
        return None

    base = re.sub(r"\.git$", "", web_url)
    route = "commits" if "bitbucket.org" in base else "commit"
    url = f"{base}/{route}/{commit_id}"
    if "azure.com" in base:
        url += f"?refName=refs%2Fheads%2F{branch}"
    return url

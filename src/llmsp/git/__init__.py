"""Git integration: resolving the workspace's repository identity."""

from .remote import RepoIdentity, get_repo_name, read_remote_url, resolve_repo_identity

__all__ = [
    "RepoIdentity",
    "get_repo_name",
    "read_remote_url",
    "resolve_repo_identity",
]

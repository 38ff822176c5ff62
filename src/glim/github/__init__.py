"""GitHub metadata fetching."""

from glim.github.client import DEFAULT_API_URL, GitHubClient

__all__ = ["DEFAULT_API_URL", "GitHubClient"]

"""GitHub repository identifier parsing and validation.

An identifier has the form ``owner/repo`` (e.g. ``octocat/Hello-World``).
Case is preserved for display but ignored for equality, since GitHub
resolves names case-insensitively.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from glim.core.errors import InvalidRepositoryError

# Owner: 1-39 chars, alphanumeric + hyphen, cannot start with hyphen.
# Repo: 1-100 chars, alphanumeric + dot + hyphen + underscore.
_OWNER_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9-]{0,38}$")
_NAME_RE = re.compile(r"^[A-Za-z0-9._-]{1,100}$")


@dataclass(frozen=True, eq=False)
class RepositoryIdentifier:
    """A validated ``owner/repo`` pair."""

    owner: str
    name: str

    def __post_init__(self) -> None:
        if not _OWNER_RE.match(self.owner):
            raise InvalidRepositoryError(f"Invalid repository owner: {self.owner!r}")
        if not _NAME_RE.match(self.name) or self.name in (".", ".."):
            raise InvalidRepositoryError(f"Invalid repository name: {self.name!r}")

    @property
    def key(self) -> str:
        """Return the lowercased ``owner/repo`` string used for caching."""
        return f"{self.owner}/{self.name}".lower()

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RepositoryIdentifier):
            return NotImplemented
        return self.key == other.key

    def __hash__(self) -> int:
        return hash(self.key)

    def __str__(self) -> str:
        return self.full_name


def parse_identifier(raw: str) -> RepositoryIdentifier:
    """Parse and validate an ``owner/repo`` string.

    Strips surrounding whitespace and slashes; case is kept as given.

    Raises:
        InvalidRepositoryError: If *raw* is not a valid ``owner/repo`` pair.
    """
    normalized = raw.strip().strip("/")
    owner, sep, name = normalized.partition("/")
    if not sep or not owner or not name or "/" in name:
        raise InvalidRepositoryError(f"Invalid repository identifier: {raw!r} (expected owner/repo)")
    return RepositoryIdentifier(owner=owner, name=name)

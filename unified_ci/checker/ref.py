"""Identity of the pull request revision under examination."""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class GithubRef:
    """A repository revision checks report against."""

    owner: str
    repo: str
    sha: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    @classmethod
    def from_pull(cls, pull: dict[str, Any], sha: str | None = None) -> "GithubRef":
        """Build the ref of a pull request payload's head (or ``sha``)."""
        owner, _, repo = pull["base"]["repo"]["full_name"].partition("/")
        return cls(owner=owner, repo=repo, sha=sha or pull["head"]["sha"])

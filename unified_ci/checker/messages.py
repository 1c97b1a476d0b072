"""Check requests exchanged through the message queue and the HTTP API."""

import uuid

from pydantic import BaseModel, Field


class CheckMessage(BaseModel):
    """Request to check one pull request revision."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    installation_id: int = Field(ge=1, description="GitHub App installation ID")
    owner: str = Field(min_length=1)
    repo: str = Field(min_length=1)
    pull_number: int = Field(ge=1)
    sha: str | None = Field(
        default=None, description="Head revision, defaults to the pull's head"
    )
    repo_path: str | None = Field(
        default=None,
        description="Working copy, defaults to <work_dir>/<owner>/<repo>/<sha>",
    )
    attempts: int = Field(default=0, ge=0)

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

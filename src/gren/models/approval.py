"""Pydantic models for persisted hook approvals."""

from datetime import datetime

from pydantic import BaseModel, Field


class ApprovedCommand(BaseModel):
    """A hook command the user allowed to run for a project."""

    command: str = Field(..., description="Literal command string as configured")
    approved_at: datetime = Field(default_factory=datetime.now)


class ApprovalRecord(BaseModel):
    """All approvals for one project, keyed by command fingerprint."""

    version: str = Field(default="2", description="Storage format version")
    project_id: str = Field(..., description="Stable project identifier")
    approvals: dict[str, ApprovedCommand] = Field(
        default_factory=dict,
        description="Map of command fingerprint to approved command",
    )

    def has(self, fingerprint: str) -> bool:
        return fingerprint in self.approvals

    def add(self, fingerprint: str, command: str) -> None:
        self.approvals[fingerprint] = ApprovedCommand(command=command)

    def remove(self, fingerprint: str) -> bool:
        """Remove one approval. Returns True if it existed."""
        return self.approvals.pop(fingerprint, None) is not None

    def commands(self) -> list[str]:
        return [entry.command for entry in self.approvals.values()]

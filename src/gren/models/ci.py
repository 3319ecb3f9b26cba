"""Normalized pull request / CI summaries supplied by CI providers."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class CheckState(str, Enum):
    """Aggregate state of the checks on a branch."""

    SUCCESS = "success"
    FAILURE = "failure"
    PENDING = "pending"
    ERROR = "error"
    UNKNOWN = "unknown"


class CISummary(BaseModel):
    """Pull/merge request and check status for one branch."""

    branch: str
    number: Optional[int] = Field(default=None, description="PR/MR number")
    state: Optional[str] = Field(
        default=None, description="OPEN, MERGED, CLOSED or DRAFT"
    )
    url: Optional[str] = None
    checks: CheckState = CheckState.UNKNOWN

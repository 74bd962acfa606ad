"""Schemas for save outcomes and the duplicate resolution workflow.

Conflicts are an expected outcome of saving, so ``save_take`` returns one of
the tagged results below instead of raising.
"""

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field

from takelog.schemas.envelope import ErrorInfo
from takelog.schemas.take import ConflictSet, LogSheet, RangeSpec


class ResolutionStrategy(str, Enum):
    RENUMBER_FORWARD = "renumber_forward"
    SWAP = "swap"
    OVERWRITE = "overwrite"
    CANCEL = "cancel"


class WorkflowState(str, Enum):
    IDLE = "idle"
    DETECTING = "detecting"
    AWAITING_DECISION = "awaiting_decision"
    RESOLVING = "resolving"
    COMMITTED = "committed"
    CANCELLED = "cancelled"
    # Direct commit rejected by the store; no decision is pending
    FAILED = "failed"


class Committed(BaseModel):
    status: Literal["committed"] = "committed"
    take: LogSheet
    # Other takes renumbered or removed while resolving
    modified_ids: list[str] = Field(default_factory=list)
    deleted_ids: list[str] = Field(default_factory=list)


class Cancelled(BaseModel):
    status: Literal["cancelled"] = "cancelled"
    resolution_handle: str


class ConflictsPending(BaseModel):
    status: Literal["conflicts_pending"] = "conflicts_pending"
    conflicts: ConflictSet
    resolution_handle: str
    strategies: list[ResolutionStrategy]


class Failed(BaseModel):
    """Save failed; when a handle is present the decision can be retried."""

    status: Literal["failed"] = "failed"
    error: ErrorInfo
    resolution_handle: str | None = None
    strategies: list[ResolutionStrategy] = Field(default_factory=list)


SaveResult = Annotated[
    Union[Committed, Cancelled, ConflictsPending, Failed],
    Field(discriminator="status"),
]


# =============================================================================
# API requests
# =============================================================================


class ResolveRequest(BaseModel):
    strategy: ResolutionStrategy


class RangeEditRequest(BaseModel):
    range: RangeSpec
    value: Any = None
    # Per-take overrides: take_id -> field names that must not change
    disabled_fields: dict[str, set[str]] | None = None


class WorkflowEventData(BaseModel):
    """Payload published for every workflow transition."""

    resolution_handle: str
    previous_state: WorkflowState
    state: WorkflowState
    take_id: str | None = None
    conflict_ids: list[str] = Field(default_factory=list)


# =============================================================================
# Events
# =============================================================================


class EventType(str, Enum):
    WORKFLOW_TRANSITION = "workflow_transition"
    TAKES_COMMITTED = "takes_committed"


class TakesCommittedData(BaseModel):
    """Payload published after any commit that changed stored takes."""

    reason: Literal["save", "resolution", "range_edit", "camera_toggle", "delete"]
    take_id: str | None = None
    modified_ids: list[str] = Field(default_factory=list)
    deleted_ids: list[str] = Field(default_factory=list)

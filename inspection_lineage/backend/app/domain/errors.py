# backend/app/domain/errors.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


class EngineError(Exception):
    """Base for every failure the lineage / task engine reports to its caller."""

    status_code = 500
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def as_dict(self) -> dict:
        return {"error": type(self).__name__, "detail": self.message, "retryable": self.retryable}


class NotAuthenticated(EngineError):
    status_code = 401

    def __init__(self, message: str = "an authenticated user is required for this write"):
        super().__init__(message)


class ValidationFailed(EngineError):
    """
    Caller input is incomplete (missing note / assignee / quantity, bad template, ...).
    `missing` names the fields the user has to supply before retrying.
    """

    status_code = 422

    def __init__(self, message: str, *, missing: Optional[list[str]] = None):
        super().__init__(message)
        self.missing = list(missing or [])

    def as_dict(self) -> dict:
        d = super().as_dict()
        d["missing"] = self.missing
        return d


class NotFound(EngineError):
    status_code = 404


class StoreReadFailed(EngineError):
    status_code = 503
    retryable = True


class LineageBroken(StoreReadFailed):
    """An inspection in the chain (or the leaf itself) could not be read."""

    status_code = 404
    retryable = False

    def __init__(self, inspection_id: int, *, leaf_id: Optional[int] = None):
        if leaf_id is None or leaf_id == inspection_id:
            msg = f"inspection {inspection_id} not found"
        else:
            msg = f"ancestor inspection {inspection_id} of {leaf_id} not found"
        super().__init__(msg)
        self.inspection_id = inspection_id
        self.leaf_id = leaf_id


class StoreWriteFailed(EngineError):
    status_code = 503
    retryable = True


class ChainDepthExceeded(EngineError):
    """Parent pointers cycle, or the chain is longer than max_chain_depth."""

    status_code = 409

    def __init__(self, leaf_id: int, depth: int, *, cycle_at: Optional[int] = None):
        if cycle_at is not None:
            msg = f"inspection chain of {leaf_id} loops back to inspection {cycle_at}"
        else:
            msg = f"inspection chain of {leaf_id} exceeds max depth {depth}"
        super().__init__(msg)
        self.leaf_id = leaf_id
        self.depth = depth
        self.cycle_at = cycle_at


@dataclass(frozen=True)
class UnresolvableReference:
    """
    A copied subtask's room or run could not be mapped into the new inspection.
    Recorded on the clone result; the reference is dropped, the clone proceeds.
    """

    subtask_id: int
    kind: str  # room | run
    old_id: Optional[int]
    reason: str

    def as_dict(self) -> dict:
        return {"subtask_id": self.subtask_id, "kind": self.kind, "old_id": self.old_id, "reason": self.reason}

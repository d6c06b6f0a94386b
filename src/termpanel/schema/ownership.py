"""Ownership status and result schemas"""

from typing import Optional
from pydantic import Field

from .base import WireModel


class OwnershipStatus(WireModel):
    """Point-in-time read of who may write to a session"""
    exists: bool = Field(..., description="Whether the session exists")
    owned_by_window_id: Optional[int] = Field(default=None, description="Owning window, None when unowned")
    owned_by_this_window: bool = Field(default=False, description="Whether the asking window owns it")
    can_claim: bool = Field(default=True, description="Whether a non-forced claim would succeed")
    owner_window_exists: Optional[bool] = Field(
        default=None,
        description="Whether the owning window is still alive; None means unknown (treated as alive)"
    )

    @property
    def owner_alive(self) -> bool:
        return self.owner_window_exists is not False


class OwnershipResult(WireModel):
    """Outcome of a claim or release attempt"""
    success: bool = Field(..., description="Whether the operation succeeded")
    reason: Optional[str] = Field(default=None, description="Failure reason, e.g. 'owned-elsewhere'")
    owned_by_window_id: Optional[int] = Field(default=None, description="Current owner when the claim failed")

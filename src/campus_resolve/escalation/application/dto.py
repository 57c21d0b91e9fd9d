"""
Escalation Application DTOs
===========================

Pydantic models for the escalation rule endpoints.
"""

from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field

from campus_resolve.config import NotifyChannel
from campus_resolve.escalation.domain import EscalationRule

ChannelStr = Literal["slack", "email"]


class EscalationRuleCreateRequest(BaseModel):
    """Request body for adding a ladder level."""
    domain_id: int = Field(..., ge=1)
    scope_id: Optional[int] = Field(None, ge=1, description="Omit for a domain-wide rule")
    level: int = Field(..., ge=1, description="Ladder level, unique per domain/scope")
    tat_hours: Optional[int] = Field(None, ge=1, description="Defaults to DEFAULT_RULE_TAT_HOURS")
    notify_channel: ChannelStr = Field(default="slack")
    assignee: Optional[str] = Field(None, description="External id of an admin or super_admin")


class EscalationRuleUpdateRequest(BaseModel):
    """Partial update; omitted fields are left unchanged."""
    scope_id: Optional[int] = Field(None, ge=1)
    level: Optional[int] = Field(None, ge=1)
    tat_hours: Optional[int] = Field(None, ge=1)
    notify_channel: Optional[ChannelStr] = None
    assignee: Optional[str] = None

    def changes(self) -> Dict[str, Any]:
        changes = self.model_dump(exclude_unset=True)
        if changes.get("notify_channel") is not None:
            changes["notify_channel"] = NotifyChannel(changes["notify_channel"])
        elif "notify_channel" in changes:
            del changes["notify_channel"]
        return changes


class EscalationRuleResponse(BaseModel):
    id: int
    domain_id: int
    scope_id: Optional[int] = None
    level: int
    tat_hours: int
    notify_channel: ChannelStr
    assignee: Optional[str] = None

    @classmethod
    def from_rule(cls, rule: EscalationRule) -> "EscalationRuleResponse":
        return cls(
            id=rule.id,
            domain_id=rule.domain_id,
            scope_id=rule.scope_id,
            level=rule.level,
            tat_hours=rule.tat_hours,
            notify_channel=rule.notify_channel.value,
            assignee=rule.assignee,
        )


class AutoEscalationResponse(BaseModel):
    """Outcome of one auto-escalation sweep."""
    success: bool = True
    escalated: int
    capped: int
    errors: int

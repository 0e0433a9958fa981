"""
Pydantic request/response models for the SOS coach API.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ..core.model import Message, TurnResult


# =============================================================================
# REQUEST MODELS
# =============================================================================

class StartSessionRequest(BaseModel):
    """Start an SOS session. Without ``kind`` the client is asked what they need."""
    token: Optional[str] = Field(None, description="Access token from the coach's link")
    client_id: Optional[str] = Field(None, description="Client id cached from an earlier session")
    kind: Optional[str] = Field(None, pattern="^(craving|energy)$", description="Skip the struggle question")


class TurnRequest(BaseModel):
    """One client turn: free text or the label of a selected option."""
    state: Dict[str, Any] = Field(..., description="Conversation state returned by the previous turn")
    user_message: str = Field("", description="Client's answer")
    token: Optional[str] = Field(None, description="Access token, when the client cookie is not available")


class FollowUpRequest(BaseModel):
    """Deferred check-in, sent by the UI after ``follow_up_after_seconds``."""
    state: Dict[str, Any]
    token: Optional[str] = None


# =============================================================================
# RESPONSE MODELS
# =============================================================================

class OptionData(BaseModel):
    emoji: Optional[str] = None
    name: str
    value: Optional[str] = None
    text: Optional[str] = None


class InterventionData(BaseModel):
    id: str
    name: str
    description: str
    category: Optional[str] = None
    context_tags: Optional[List[str]] = None


class TurnResponse(BaseModel):
    """A coach line plus what the UI should offer next."""
    message: str
    message_type: str
    next_step: str
    options: List[OptionData] = []
    interventions: List[InterventionData] = []
    follow_up_after_seconds: Optional[float] = None
    is_complete: bool = False
    state: Dict[str, Any]

    @classmethod
    def from_result(cls, result: TurnResult) -> "TurnResponse":
        data = result.to_dict()
        return cls(
            message=data["message"],
            message_type=data["message_type"],
            next_step=data["next_step"],
            options=[
                OptionData(**o) if isinstance(o, dict) else OptionData(name=str(o))
                for o in data["options"]
            ],
            interventions=[InterventionData(**i) for i in data["interventions"]],
            follow_up_after_seconds=data["follow_up_after"],
            is_complete=data["is_complete"],
            state=data["state"] or {},
        )


class StartSessionResponse(BaseModel):
    client_id: str
    coach_name: str
    turns: List[TurnResponse]


class MessageData(BaseModel):
    id: str
    sender: str
    text: str
    message_type: str
    created_at: Optional[str] = None
    metadata: Dict[str, Any] = {}

    @classmethod
    def from_message(cls, message: Message) -> "MessageData":
        data = message.to_dict()
        return cls(
            id=data["id"],
            sender=data["sender"],
            text=data["text"],
            message_type=data["message_type"],
            created_at=data["created_at"],
            metadata=data["metadata"],
        )


class StatusResponse(BaseModel):
    llm_available: bool
    store: str

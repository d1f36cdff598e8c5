"""
Inbound webhook payloads.

Only the fields the service reads are declared; everything else on a
message or conversation is kept as received so snapshots stay verbatim.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Sender(BaseModel):
    model_config = ConfigDict(extra="allow")

    user_id: str | None = None
    name: str | None = None

    @property
    def is_platform_service(self) -> bool:
        """Messages sent through the Platform API carry a name instead of a user id."""
        return not self.user_id


class MessageSnapshot(BaseModel):
    """Last known state of a message, stored as received."""

    model_config = ConfigDict(extra="allow")

    id: str
    sender: Sender = Field(default_factory=Sender)
    recipient_status: dict[str, str] = Field(default_factory=dict)
    parts: list[dict[str, Any]] = Field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_unset=True)


class EventInfo(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str
    created_at: str | None = None


class HookReference(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str = ""


class WebhookEvent(BaseModel):
    """Body of a webhook POST."""

    model_config = ConfigDict(extra="allow")

    event: EventInfo
    message: MessageSnapshot | None = None
    conversation: dict[str, Any] | None = None
    config: HookReference = Field(default_factory=HookReference)

    @property
    def type(self) -> str:
        return self.event.type

    @property
    def created_at(self) -> str | None:
        return self.event.created_at

    @property
    def hook_config_name(self) -> str:
        return self.config.name

    def to_task_payload(self, title: str) -> dict[str, Any]:
        """Job data handed to the hook's task queue."""
        return {
            "title": title,
            "timestamp": self.created_at,
            "type": self.type,
            "conversation": self.conversation,
            "message": self.message.to_payload() if self.message else None,
        }


class EventTypes:
    MESSAGE_SENT = "message.sent"
    MESSAGE_DELIVERED = "message.delivered"
    MESSAGE_READ = "message.read"
    MESSAGE_DELETED = "message.deleted"

"""
DTOs for inbound WebSocket frames.
"""

import json
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from relay.domain.events import EventKind, classify_event
from relay.domain.exceptions import MessageFormatError


class InboundMessage(BaseModel):
    """
    DTO for one client frame.

    Wire format: ``{"event": "<name>", "data": {...}}``

    Attributes:
        event: Event name
        data: Event payload (opaque except for control events)
    """

    event: str = Field(..., description="Event name")
    data: Any = Field(default_factory=dict, description="Event payload")

    @field_validator("event")
    @classmethod
    def validate_event_not_empty(cls, v: str) -> str:
        """Validate event is not empty."""
        if not v or not v.strip():
            raise ValueError("Event name cannot be empty")
        return v.strip()

    @field_validator("data", mode="before")
    @classmethod
    def default_data(cls, v: Any) -> Any:
        return {} if v is None else v

    @classmethod
    def parse_frame(cls, raw: str, max_size: int = 1_048_576) -> "InboundMessage":
        """
        Parse a raw text frame.

        Args:
            raw: Frame text
            max_size: Maximum frame size in bytes

        Returns:
            Parsed message

        Raises:
            MessageFormatError: If the frame is oversized, not JSON, or has
                no event name
        """
        size = len(raw.encode("utf-8"))
        if size > max_size:
            raise MessageFormatError(
                f"Message too large ({size} bytes, max {max_size})"
            )

        try:
            decoded = json.loads(raw)
        except json.JSONDecodeError as e:
            raise MessageFormatError(f"Invalid JSON: {e.msg}")
        except RecursionError:
            raise MessageFormatError("Invalid JSON: nesting too deep")

        if not isinstance(decoded, dict):
            raise MessageFormatError("Message must be a JSON object")

        try:
            return cls(**decoded)
        except (ValidationError, TypeError) as e:
            raise MessageFormatError(f"Invalid message: {e}")

    @property
    def kind(self) -> EventKind:
        return classify_event(self.event)

    def get(self, key: str, default: Any = None) -> Any:
        """Read a field from dict payloads."""
        if isinstance(self.data, dict):
            return self.data.get(key, default)
        return default


class AuthenticatePayload(BaseModel):
    """
    Payload of the 'authenticate' event.

    Missing fields are allowed here; the session registry decides whether
    the credentials are complete.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    user_id: Optional[str] = Field(default=None, alias="userId")
    user_name: Optional[str] = Field(default=None, alias="userName")
    display_name: Optional[str] = Field(default=None, alias="displayName")

    @field_validator("user_id", "user_name", "display_name", mode="before")
    @classmethod
    def coerce_to_string(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        if isinstance(v, (int, str)) and not isinstance(v, bool):
            return str(v).strip() or None
        return None

    @classmethod
    def from_message(cls, message: InboundMessage) -> "AuthenticatePayload":
        data: Dict[str, Any] = message.data if isinstance(message.data, dict) else {}
        return cls(**data)

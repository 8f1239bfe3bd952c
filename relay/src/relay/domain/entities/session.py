"""
Session entity - one authenticated user bound to one connection.
"""

from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Session(BaseModel):
    """
    Registry entry for an authenticated user.

    Serialized with camelCase keys, which is also the persisted layout.

    Attributes:
        user_id: Unique user key
        user_name: Login name
        display_name: Name shown to other users
        connection_id: Connection currently bound to the user
        connected_at: Authentication timestamp
        client_ip: Remote IP of the bound connection
        restored: Loaded from a snapshot and not yet reclaimed by a live
            connection (never persisted)
    """

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="userId")
    user_name: str = Field(..., alias="userName")
    display_name: str = Field(..., alias="displayName")
    connection_id: str = Field(..., alias="connectionId")
    connected_at: datetime = Field(
        default_factory=datetime.utcnow, alias="connectedAt"
    )
    client_ip: Optional[str] = Field(default=None, alias="clientIp")
    restored: bool = Field(default=False, exclude=True)

    @field_validator("user_id", "user_name", mode="before")
    @classmethod
    def validate_not_empty(cls, v: object) -> str:
        """Validate identity fields are not empty (numeric IDs become strings)."""
        if isinstance(v, int) and not isinstance(v, bool):
            v = str(v)
        if not isinstance(v, str) or not v.strip():
            raise ValueError("Identity fields cannot be empty")
        return v

    def identity(self) -> Dict[str, str]:
        """Public identity used in relayed envelopes and presence events."""
        return {
            "userId": self.user_id,
            "displayName": self.display_name,
            "userName": self.user_name,
        }

    def to_document(self) -> Dict[str, object]:
        """Persisted representation."""
        return self.model_dump(mode="json", by_alias=True)

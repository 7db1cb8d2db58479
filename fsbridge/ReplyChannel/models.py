"""
ReplyChannel Models.

Pydantic models for the JSON envelopes exchanged with the native extension.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

# Error code carried by replies synthesized for expired requests (TIMEOUT_ERR)
TIMEOUT_ERROR_CODE = 23


class BridgeRequest(BaseModel):
    """
    Request envelope.

    ``cmd`` names the command; ``reply_id`` is set on asynchronous requests
    only. Command specific fields travel as extra fields.
    """

    model_config = ConfigDict(extra="allow", frozen=True)

    cmd: str
    reply_id: Optional[int] = None

    @property
    def fields(self) -> Dict[str, Any]:
        """Command specific fields."""
        return dict(self.model_extra or {})

    def to_json(self) -> str:
        """Serialize for the wire; ``None`` valued fields are omitted."""
        return self.model_dump_json(exclude_none=True)


class BridgeReply(BaseModel):
    """Reply envelope; the payload travels as extra fields."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    reply_id: Optional[int] = None
    is_error: bool = Field(default=False, alias="isError")
    error_code: Optional[int] = Field(default=None, alias="errorCode")

    def get(self, name: str, default: Any = None) -> Any:
        """Read a payload field."""
        return (self.model_extra or {}).get(name, default)

    @property
    def payload(self) -> Dict[str, Any]:
        """All payload fields."""
        return dict(self.model_extra or {})

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BridgeReply":
        """Create from a decoded message."""
        return cls.model_validate(data)

    @classmethod
    def timeout(cls, reply_id: int) -> "BridgeReply":
        """Reply handed to a request whose answer never arrived."""
        return cls(reply_id=reply_id, is_error=True, error_code=TIMEOUT_ERROR_CODE)


__all__ = [
    "TIMEOUT_ERROR_CODE",
    "BridgeRequest",
    "BridgeReply",
]

"""
FileSystemGate Pydantic models.

Defines file metadata, storage volumes, list filters and stream modes.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, Any
from pydantic import BaseModel, ConfigDict, Field


class StreamMode(str, Enum):
    """Mode a file stream is opened with."""
    READ = "r"
    READ_WRITE = "rw"
    WRITE = "w"
    APPEND = "a"


class StreamDataType(str, Enum):
    """Encoding of data moved by FileStreamRead/FileStreamWrite."""
    DEFAULT = "Default"
    BYTES = "Bytes"
    BASE64 = "Base64"


class StorageType(str, Enum):
    """Storage types reported by the native side."""
    INTERNAL = "INTERNAL"
    EXTERNAL = "EXTERNAL"
    USB_HOST = "USB_HOST"
    UNKNOWN = "UNKNOWN"


class StorageState(str, Enum):
    """Storage states reported by the native side."""
    MOUNTED = "MOUNTED"
    REMOVED = "REMOVED"
    UNMOUNTABLE = "UNMOUNTABLE"


def _from_epoch(seconds: Optional[float]) -> Optional[datetime]:
    if seconds is None:
        return None
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


class FileStat(BaseModel):
    """Metadata returned by FileStat; times are epoch seconds."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    is_file: bool = Field(default=False, alias="isFile")
    is_directory: bool = Field(default=False, alias="isDirectory")
    read_only: bool = Field(default=True, alias="readOnly")
    size: int = 0
    created: Optional[float] = None
    modified: Optional[float] = None
    length: Optional[int] = None

    @property
    def created_at(self) -> Optional[datetime]:
        return _from_epoch(self.created)

    @property
    def modified_at(self) -> Optional[datetime]:
        return _from_epoch(self.modified)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FileStat":
        """Create from the reply's ``value`` payload."""
        return cls.model_validate(data)


class FileSystemStorage(BaseModel):
    """
    A storage volume.

    ``type`` and ``state`` are kept as the strings the native side sends;
    see StorageType and StorageState for the known values.
    """
    model_config = ConfigDict(frozen=True)

    label: str
    type: str = StorageType.UNKNOWN.value
    state: str = StorageState.MOUNTED.value

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for JSON serialization."""
        return self.model_dump(mode="json")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FileSystemStorage":
        """Create from a reply payload."""
        return cls(
            label=data.get("label") or "",
            type=data.get("type") or StorageType.UNKNOWN.value,
            state=data.get("state") or StorageState.MOUNTED.value,
        )


class FileFilter(BaseModel):
    """Filter applied by listFiles on the native side."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: Optional[str] = None
    start_modified: Optional[datetime] = Field(default=None, alias="startModified")
    end_modified: Optional[datetime] = Field(default=None, alias="endModified")
    start_created: Optional[datetime] = Field(default=None, alias="startCreated")
    end_created: Optional[datetime] = Field(default=None, alias="endCreated")

    def to_wire(self) -> str:
        """JSON text sent in the ``filter`` field."""
        return self.model_dump_json(by_alias=True, exclude_none=True)


__all__ = [
    "StreamMode",
    "StreamDataType",
    "StorageType",
    "StorageState",
    "FileStat",
    "FileSystemStorage",
    "FileFilter",
]

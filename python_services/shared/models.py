"""
Shared Pydantic models for the Control API.
"""

from datetime import datetime
from typing import Optional, List, Any
from pydantic import BaseModel, Field, ConfigDict
from enum import Enum


class ReplicationMode(str, Enum):
    """Role of this instance in a primary/backup deployment."""
    STANDALONE = "standalone"
    PRIMARY = "primary"
    BACKUP = "backup"


class BackupState(str, Enum):
    """Reachability of a configured backup host."""
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    CHECKING = "checking"


class CommandResponse(BaseModel):
    """Uniform success envelope for commands."""
    success: bool = True
    message: Optional[str] = None


class GoToSlideResponse(CommandResponse):
    """Navigation result with the tracked slide before and after the move."""
    model_config = ConfigDict(populate_by_name=True)

    from_slide: Optional[int] = Field(default=None, alias="fromSlide")
    to_slide: Optional[int] = Field(default=None, alias="toSlide")


class ErrorResponse(BaseModel):
    """Uniform error envelope."""
    error: str


class HealthCheck(BaseModel):
    """Health check response model."""
    service: str
    status: str = "healthy"
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    version: str = "0.1.0"


class Bounds(BaseModel):
    """Rectangle in virtual desktop coordinates."""
    x: int
    y: int
    width: int
    height: int

    def inset(self, margin: int) -> "Bounds":
        return Bounds(
            x=self.x + margin,
            y=self.y + margin,
            width=max(1, self.width - 2 * margin),
            height=max(1, self.height - 2 * margin),
        )


class Display(BaseModel):
    """A physical display currently attached to the machine."""
    id: int
    bounds: Bounds
    label: str = ""
    primary: bool = False


class BackupStatusEntry(BaseModel):
    ip: str
    status: BackupState


class BackupStatusResponse(BaseModel):
    backups: List[BackupStatusEntry] = []


# Request bodies -------------------------------------------------------------

class OpenRequest(BaseModel):
    url: Optional[str] = None


class OpenPresetRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    preset: Any = None
    with_notes: bool = Field(default=False, alias="withNotes")


class GoToSlideRequest(BaseModel):
    # Validated by the controller so strings like "3" are accepted and 2.5 / true are not
    slide: Any = None


class PresetsUpdate(BaseModel):
    presentation1: Optional[str] = None
    presentation2: Optional[str] = None
    presentation3: Optional[str] = None


class StagetimerSettings(BaseModel):
    """Stagetimer.io room credentials and display switches."""
    model_config = ConfigDict(populate_by_name=True)

    room_id: Optional[str] = Field(default=None, alias="roomId")
    api_key: Optional[str] = Field(default=None, alias="apiKey")
    enabled: Optional[bool] = None
    visible: Optional[bool] = None

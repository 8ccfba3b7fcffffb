"""
Pydantic models for adventure configuration and generated content.

The generator returns ScaffoldResult and MovementExpansion; the workflow
stores them on the Adventure as Movement objects.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class AdventureLength(str, Enum):
    ONESHOT = "oneshot"
    SHORT_CAMPAIGN = "short_campaign"
    CAMPAIGN = "campaign"


class Difficulty(str, Enum):
    EASIER = "easier"
    STANDARD = "standard"
    HARDER = "harder"


class Stakes(str, Enum):
    LOW = "low"
    PERSONAL = "personal"
    HIGH = "high"
    WORLD = "world"


class MovementType(str, Enum):
    COMBAT = "combat"
    EXPLORATION = "exploration"
    SOCIAL = "social"
    PUZZLE = "puzzle"


class AdventureConfig(BaseModel):
    """User-chosen parameters for a new adventure."""

    length: AdventureLength = AdventureLength.ONESHOT
    primary_motif: str = Field(..., min_length=1, max_length=200)
    frame: str = Field(default="witherwild", max_length=100)
    custom_frame_description: Optional[str] = Field(default=None, max_length=2000)
    focus: Optional[str] = Field(default=None, max_length=500)
    party_size: int = Field(default=4, ge=1, le=8)
    party_level: int = Field(default=1, ge=1, le=20)
    difficulty: Difficulty = Difficulty.STANDARD
    stakes: Stakes = Stakes.PERSONAL


class Movement(BaseModel):
    """One scene of an adventure."""

    id: str
    title: str
    type: MovementType
    description: str = ""
    estimated_time: Optional[str] = None
    order_index: int = Field(..., ge=0)
    locked: bool = False
    content: Optional[str] = None
    gm_notes: Optional[str] = None

    @property
    def is_expanded(self) -> bool:
        return bool(self.content)


class ScaffoldMovement(BaseModel):
    """A movement outline as produced by the generator."""

    title: str = Field(..., min_length=1)
    type: MovementType
    description: str = ""
    estimated_time: Optional[str] = None


class ScaffoldResult(BaseModel):
    title: str = Field(..., min_length=1)
    description: str = ""
    estimated_duration: Optional[str] = None
    movements: List[ScaffoldMovement] = Field(..., min_length=1)


class MovementExpansion(BaseModel):
    """Full scene text for a movement."""

    content: str = Field(..., min_length=1)
    gm_notes: Optional[str] = None

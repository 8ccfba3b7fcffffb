"""
Pydantic request and response models for API endpoints.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from daggergm.generation.models import AdventureConfig, Movement

MAX_FEEDBACK_LENGTH = 1000
MAX_INSTRUCTION_LENGTH = 2000


class GenerateAdventureRequest(AdventureConfig):
    """Request model for adventure generation. Same fields as AdventureConfig."""


class RegenerateMovementRequest(BaseModel):
    feedback: Optional[str] = Field(default=None, max_length=MAX_FEEDBACK_LENGTH)

    @field_validator("feedback")
    @classmethod
    def strip_feedback(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return v.strip() or None


class RefineMovementRequest(BaseModel):
    instruction: str = Field(..., min_length=1, max_length=MAX_INSTRUCTION_LENGTH)

    @field_validator("instruction")
    @classmethod
    def strip_instruction(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Instruction must not be blank")
        return v


class PurchaseCreditsRequest(BaseModel):
    package_id: str = Field(..., min_length=1, max_length=50)
    success_url: Optional[str] = Field(default=None, max_length=2000)
    cancel_url: Optional[str] = Field(default=None, max_length=2000)


class RegenerationCountsResponse(BaseModel):
    scaffold: int
    expansion: int
    scaffold_remaining: int
    expansion_remaining: int
    scaffold_limit: int
    expansion_limit: int


class MovementUpdateResponse(BaseModel):
    success: bool = True
    adventure_id: str
    movement: Movement
    charged_credit: bool
    regenerations: Optional[Dict[str, int]] = None


class CheckoutSessionResponse(BaseModel):
    success: bool = True
    session_id: str
    url: Optional[str] = None


class WebhookResponse(BaseModel):
    received: bool = True
    fulfilled: bool = False
    event_type: str


class RateLimitStatusResponse(BaseModel):
    operation: str
    limit: int
    remaining: int
    reset_time: int
    window_seconds: int
    identity_type: str


class CreditPackagesResponse(BaseModel):
    packages: List[Dict[str, Any]]

"""
Adventure generation and movement editing endpoints.

Each action is rate limited per caller, draws on the adventure's free
regeneration budget (or a credit once it is spent) and reports the caller's
remaining allowance in X-RateLimit-* headers.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Response, status

from app.dependencies import (
    get_rate_limit_context,
    get_rate_limiter,
    get_regeneration_limiter,
    get_workflow,
)
from app.middleware.rate_limit import apply_rate_limit_headers
from app.models import (
    GenerateAdventureRequest,
    MovementUpdateResponse,
    RefineMovementRequest,
    RegenerateMovementRequest,
    RegenerationCountsResponse,
)
from daggergm.adventures.workflow import AdventureWorkflow, MovementUpdate
from daggergm.generation.models import AdventureConfig
from daggergm.ratelimit import RateLimitContext, RateLimiter, RateLimitOperation
from daggergm.regeneration import LimitType, RegenerationLimiter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/adventures", tags=["adventures"])


def _movement_response(update: MovementUpdate) -> MovementUpdateResponse:
    return MovementUpdateResponse(
        adventure_id=update.adventure_id,
        movement=update.movement,
        charged_credit=update.charged_credit,
        regenerations=update.regenerations.to_dict() if update.regenerations else None,
    )


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    responses={
        401: {"description": "Authentication required"},
        402: {"description": "Insufficient credits"},
        429: {"description": "Rate limit exceeded"},
        502: {"description": "Generation failed; the credit was refunded"},
    },
)
async def generate_adventure(
    body: GenerateAdventureRequest,
    response: Response,
    context: RateLimitContext = Depends(get_rate_limit_context),
    workflow: AdventureWorkflow = Depends(get_workflow),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> Dict[str, Any]:
    """Generate a new adventure scaffold for one adventure credit."""
    config = AdventureConfig.model_validate(body.model_dump())
    adventure = await workflow.generate_adventure(context, config)
    await apply_rate_limit_headers(
        response, limiter, RateLimitOperation.ADVENTURE_GENERATION, context
    )
    return {"success": True, "adventure": adventure.model_dump(mode="json")}


@router.get("/{adventure_id}")
async def get_adventure(
    adventure_id: str,
    context: RateLimitContext = Depends(get_rate_limit_context),
    workflow: AdventureWorkflow = Depends(get_workflow),
) -> Dict[str, Any]:
    adventure = await workflow.get_adventure(context, adventure_id)
    return {"success": True, "adventure": adventure.model_dump(mode="json")}


@router.get("/{adventure_id}/regenerations", response_model=RegenerationCountsResponse)
async def get_regenerations(
    adventure_id: str,
    context: RateLimitContext = Depends(get_rate_limit_context),
    workflow: AdventureWorkflow = Depends(get_workflow),
    regeneration: RegenerationLimiter = Depends(get_regeneration_limiter),
) -> RegenerationCountsResponse:
    """Free regenerations used and remaining, for "X/Y used" displays."""
    counts = await workflow.get_regeneration_counts(context, adventure_id)
    return RegenerationCountsResponse(
        **counts.to_dict(),
        scaffold_limit=regeneration.limit_for(LimitType.SCAFFOLD),
        expansion_limit=regeneration.limit_for(LimitType.EXPANSION),
    )


@router.post(
    "/{adventure_id}/movements/{movement_id}/regenerate",
    response_model=MovementUpdateResponse,
    responses={
        403: {"description": "Scaffold regeneration limit reached"},
        409: {"description": "Movement is locked"},
    },
)
async def regenerate_movement(
    adventure_id: str,
    movement_id: str,
    response: Response,
    body: Optional[RegenerateMovementRequest] = None,
    context: RateLimitContext = Depends(get_rate_limit_context),
    workflow: AdventureWorkflow = Depends(get_workflow),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> MovementUpdateResponse:
    update = await workflow.regenerate_scaffold_movement(
        context, adventure_id, movement_id, feedback=body.feedback if body else None
    )
    await apply_rate_limit_headers(
        response, limiter, RateLimitOperation.MOVEMENT_REGENERATION, context
    )
    return _movement_response(update)


@router.post(
    "/{adventure_id}/movements/{movement_id}/expand",
    response_model=MovementUpdateResponse,
    responses={403: {"description": "Expansion regeneration limit reached"}},
)
async def expand_movement(
    adventure_id: str,
    movement_id: str,
    response: Response,
    context: RateLimitContext = Depends(get_rate_limit_context),
    workflow: AdventureWorkflow = Depends(get_workflow),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> MovementUpdateResponse:
    update = await workflow.expand_movement(context, adventure_id, movement_id)
    await apply_rate_limit_headers(
        response, limiter, RateLimitOperation.MOVEMENT_EXPANSION, context
    )
    return _movement_response(update)


@router.post(
    "/{adventure_id}/movements/{movement_id}/refine",
    response_model=MovementUpdateResponse,
    responses={
        403: {"description": "Expansion regeneration limit reached"},
        409: {"description": "Movement has not been expanded"},
    },
)
async def refine_movement(
    adventure_id: str,
    movement_id: str,
    body: RefineMovementRequest,
    response: Response,
    context: RateLimitContext = Depends(get_rate_limit_context),
    workflow: AdventureWorkflow = Depends(get_workflow),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> MovementUpdateResponse:
    update = await workflow.refine_movement(context, adventure_id, movement_id, body.instruction)
    await apply_rate_limit_headers(
        response, limiter, RateLimitOperation.CONTENT_REFINEMENT, context
    )
    return _movement_response(update)

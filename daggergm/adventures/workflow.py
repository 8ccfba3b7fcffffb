"""
Adventure workflow: rate limits, budgets, credits and generation in order.

Every action follows the same sequence:

    rate limit -> ownership -> free budget or credit -> generate -> commit

A credit consumed for an action is refunded once if anything after the
charge fails. Free regenerations are counted only after the result is
saved.
"""

import logging
from contextlib import AsyncExitStack
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from daggergm.adventures.repository import (
    Adventure,
    AdventureRepository,
    AdventureState,
    new_adventure_id,
)
from daggergm.credits.costs import CreditType
from daggergm.credits.ledger import CreditLedger
from daggergm.errors import (
    AdventureAccessError,
    AuthenticationRequiredError,
    ConflictError,
    CreditError,
    ErrorCode,
    RegenerationLimitError,
)
from daggergm.generation.models import AdventureConfig, Movement
from daggergm.generation.provider import AdventureGenerator
from daggergm.ratelimit.context import RateLimitContext, enforce_for_context
from daggergm.ratelimit.limiter import RateLimiter
from daggergm.ratelimit.policies import RateLimitOperation
from daggergm.regeneration.limiter import RegenerationCounts, RegenerationLimiter
from daggergm.regeneration.limits import REFINEMENT_LIMIT_MESSAGE, LimitType
from daggergm.storage.errors import StoreError
from daggergm.utils.logging import Timer, mask_id
from daggergm.utils.validation import validate_uuid

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Paid fallback for regenerations is charged as one expansion credit.
REGENERATION_CREDIT_TYPE = CreditType.EXPANSION


@dataclass
class MovementUpdate:
    """Result of a regeneration, expansion or refinement."""

    adventure_id: str
    movement: Movement
    charged_credit: bool
    regenerations: Optional[RegenerationCounts]


class AdventureWorkflow:
    """Composes the rate limiter, regeneration limiter, ledger and generator."""

    def __init__(
        self,
        rate_limiter: RateLimiter,
        regeneration: RegenerationLimiter,
        ledger: CreditLedger,
        adventures: AdventureRepository,
        generator: AdventureGenerator,
        paid_regeneration_fallback: bool = True,
        rate_limiting_enabled: bool = True,
        serialize_regenerations: bool = False,
    ):
        self._rate_limiter = rate_limiter
        self._regeneration = regeneration
        self._ledger = ledger
        self._adventures = adventures
        self._generator = generator
        self._paid_fallback = paid_regeneration_fallback
        self._rate_limiting_enabled = rate_limiting_enabled
        self._serialize_regenerations = serialize_regenerations

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _enforce(self, context: RateLimitContext, operation: RateLimitOperation) -> None:
        if self._rate_limiting_enabled:
            await enforce_for_context(self._rate_limiter, operation, context)

    @staticmethod
    def _require_user(context: RateLimitContext) -> str:
        if not context.is_authenticated:
            raise AuthenticationRequiredError()
        return validate_uuid(context.user_id)

    async def _load_owned(self, user_id: str, adventure_id: str) -> Adventure:
        adventure_id = validate_uuid(adventure_id, field="adventure_id")
        adventure = await self._adventures.get(adventure_id)
        if adventure.user_id != user_id:
            logger.warning(
                f"User {mask_id(user_id)} denied access to adventure {mask_id(adventure_id)}"
            )
            raise AdventureAccessError()
        return adventure

    @staticmethod
    def _require_draft(adventure: Adventure) -> None:
        if adventure.state != AdventureState.DRAFT:
            raise ConflictError("Finalized adventures cannot be changed")

    async def _refund(self, user_id: str, credit_type: CreditType, reason: str) -> None:
        """Compensate a consumed credit. A failed refund is logged for manual repair."""
        try:
            await self._ledger.refund(user_id, credit_type, metadata={"reason": reason})
        except CreditError as e:
            logger.error(
                f"Refund of {credit_type.value} credit for user {mask_id(user_id)} "
                f"failed after {reason}: {e.internal_message or e.message}"
            )

    async def _regenerate(
        self,
        user_id: str,
        adventure: Adventure,
        limit_type: LimitType,
        action: Callable[[], Awaitable[Movement]],
        limit_message: Optional[str] = None,
    ) -> MovementUpdate:
        """
        Run action against the free budget for limit_type.

        When the budget is spent and paid fallback is enabled, one credit is
        charged instead and the counter is left alone.
        """
        if limit_type == LimitType.SCAFFOLD:
            check = self._regeneration.check_scaffold_limit
            increment = self._regeneration.increment_scaffold_count
        else:
            check = self._regeneration.check_expansion_limit
            increment = self._regeneration.increment_expansion_count

        async with AsyncExitStack() as stack:
            if self._serialize_regenerations:
                await stack.enter_async_context(self._regeneration.guard(adventure.id))

            charged = False
            try:
                await check(adventure.id)
            except RegenerationLimitError as e:
                if not self._paid_fallback:
                    if limit_message:
                        raise RegenerationLimitError(
                            e.limit_type, e.used, e.limit, suggestion=limit_message
                        ) from e
                    raise
                await self._ledger.consume(
                    user_id,
                    REGENERATION_CREDIT_TYPE,
                    metadata={"adventure_id": adventure.id, "limit_type": limit_type.value},
                )
                charged = True

            try:
                movement = await action()
            except Exception:
                if charged:
                    await self._refund(user_id, REGENERATION_CREDIT_TYPE, f"{limit_type.value} failure")
                raise

            if not charged:
                try:
                    await increment(adventure.id)
                except RegenerationLimitError:
                    # A concurrent request took the last free slot after our check.
                    logger.warning(
                        f"{limit_type.value} counter for adventure {mask_id(adventure.id)} "
                        "reached its cap concurrently"
                    )
                except StoreError as e:
                    # The movement is already saved, so the caller still gets it.
                    logger.error(
                        f"Free {limit_type.value} regeneration for adventure "
                        f"{mask_id(adventure.id)} could not be counted: "
                        f"{e.internal_message or e.message}"
                    )

        try:
            counts = await self._regeneration.get_regeneration_counts(adventure.id)
        except StoreError as e:
            logger.warning(
                f"Regeneration counts for adventure {mask_id(adventure.id)} unavailable: "
                f"{e.internal_message or e.message}"
            )
            counts = None
        return MovementUpdate(
            adventure_id=adventure.id,
            movement=movement,
            charged_credit=charged,
            regenerations=counts,
        )

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    async def generate_adventure(
        self,
        context: RateLimitContext,
        config: AdventureConfig,
    ) -> Adventure:
        """
        Generate and save a new adventure for one adventure credit.

        Raises:
            RateLimitError, AuthenticationRequiredError, InsufficientCreditsError,
            ProviderError (after refunding the credit).
        """
        await self._enforce(context, RateLimitOperation.ADVENTURE_GENERATION)
        user_id = self._require_user(context)

        await self._ledger.consume(
            user_id,
            CreditType.ADVENTURE,
            metadata={"frame": config.frame, "motif": config.primary_motif[:100]},
        )

        try:
            with Timer("scaffold_generation", logger, logging.INFO):
                scaffold = await self._generator.generate_scaffold(config)

            adventure = Adventure(
                id=new_adventure_id(),
                user_id=user_id,
                title=scaffold.title,
                frame=config.frame,
                focus=config.focus,
                config=config,
                movements=[
                    Movement(
                        id=new_adventure_id(),
                        title=outline.title,
                        type=outline.type,
                        description=outline.description,
                        estimated_time=outline.estimated_time,
                        order_index=index,
                    )
                    for index, outline in enumerate(scaffold.movements)
                ],
            )
            await self._regeneration.create_counters(adventure.id)
            adventure = await self._adventures.create(adventure)
        except Exception:
            await self._refund(user_id, CreditType.ADVENTURE, "adventure generation failure")
            raise

        logger.info(
            f"Generated adventure {mask_id(adventure.id)} with "
            f"{len(adventure.movements)} movements for user {mask_id(user_id)}"
        )
        return adventure

    async def get_adventure(self, context: RateLimitContext, adventure_id: str) -> Adventure:
        user_id = self._require_user(context)
        return await self._load_owned(user_id, adventure_id)

    async def regenerate_scaffold_movement(
        self,
        context: RateLimitContext,
        adventure_id: str,
        movement_id: str,
        feedback: Optional[str] = None,
    ) -> MovementUpdate:
        """
        Replace one scaffold movement, keeping its id and position.

        Locked movements cannot be regenerated and are passed to the
        generator as context.
        """
        await self._enforce(context, RateLimitOperation.MOVEMENT_REGENERATION)
        user_id = self._require_user(context)
        adventure = await self._load_owned(user_id, adventure_id)
        self._require_draft(adventure)
        movement = adventure.get_movement(movement_id)
        if movement.locked:
            raise ConflictError("Locked movements cannot be regenerated")

        async def action() -> Movement:
            outline = await self._generator.regenerate_movement(
                adventure.config,
                movement,
                adventure.locked_movements(exclude_id=movement.id),
                feedback,
            )
            updated = Movement(
                id=movement.id,
                order_index=movement.order_index,
                title=outline.title,
                type=outline.type,
                description=outline.description,
                estimated_time=outline.estimated_time,
            )
            adventure.replace_movement(updated)
            await self._adventures.save_movements(adventure)
            return updated

        return await self._regenerate(user_id, adventure, LimitType.SCAFFOLD, action)

    async def expand_movement(
        self,
        context: RateLimitContext,
        adventure_id: str,
        movement_id: str,
    ) -> MovementUpdate:
        """Write (or rewrite) the full scene for a movement."""
        await self._enforce(context, RateLimitOperation.MOVEMENT_EXPANSION)
        user_id = self._require_user(context)
        adventure = await self._load_owned(user_id, adventure_id)
        self._require_draft(adventure)
        movement = adventure.get_movement(movement_id)

        async def action() -> Movement:
            with Timer("movement_expansion", logger, logging.INFO):
                expansion = await self._generator.expand_movement(
                    adventure.config,
                    movement,
                    adventure.movements_before(movement),
                )
            updated = movement.model_copy(
                update={"content": expansion.content, "gm_notes": expansion.gm_notes}
            )
            adventure.replace_movement(updated)
            await self._adventures.save_movements(adventure)
            return updated

        return await self._regenerate(user_id, adventure, LimitType.EXPANSION, action)

    async def refine_movement(
        self,
        context: RateLimitContext,
        adventure_id: str,
        movement_id: str,
        instruction: str,
    ) -> MovementUpdate:
        """Revise an expanded movement. Draws from the expansion budget."""
        await self._enforce(context, RateLimitOperation.CONTENT_REFINEMENT)
        user_id = self._require_user(context)
        adventure = await self._load_owned(user_id, adventure_id)
        self._require_draft(adventure)
        movement = adventure.get_movement(movement_id)
        if not movement.is_expanded:
            raise ConflictError(
                "Expand this movement before refining it",
                error_code=ErrorCode.MOVEMENT_NOT_EXPANDED,
            )

        async def action() -> Movement:
            refined = await self._generator.refine_movement(adventure.config, movement, instruction)
            updated = movement.model_copy(
                update={"content": refined.content, "gm_notes": refined.gm_notes or movement.gm_notes}
            )
            adventure.replace_movement(updated)
            await self._adventures.save_movements(adventure)
            return updated

        return await self._regenerate(
            user_id,
            adventure,
            LimitType.EXPANSION,
            action,
            limit_message=REFINEMENT_LIMIT_MESSAGE,
        )

    async def get_regeneration_counts(
        self,
        context: RateLimitContext,
        adventure_id: str,
    ) -> RegenerationCounts:
        user_id = self._require_user(context)
        adventure = await self._load_owned(user_id, adventure_id)
        return await self._regeneration.get_regeneration_counts(adventure.id)

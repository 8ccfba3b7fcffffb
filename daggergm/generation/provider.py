"""
Adventure content generation.

AdventureGenerator is the contract the workflow depends on. The OpenAI
implementation asks for JSON and validates it against the pydantic models in
daggergm.generation.models; anything unusable is reported as ProviderError.
"""

import json
import logging
from typing import List, Optional, Protocol, Type, TypeVar

import openai
from openai import AsyncOpenAI
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from daggergm.config import LLMSettings
from daggergm.errors import ProviderError
from daggergm.generation.models import (
    AdventureConfig,
    Movement,
    MovementExpansion,
    ScaffoldMovement,
    ScaffoldResult,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class AdventureGenerator(Protocol):
    """Produces scaffolds and movement content for an adventure."""

    async def generate_scaffold(self, config: AdventureConfig) -> ScaffoldResult:
        ...

    async def regenerate_movement(
        self,
        config: AdventureConfig,
        movement: Movement,
        locked_movements: List[Movement],
        feedback: Optional[str] = None,
    ) -> ScaffoldMovement:
        ...

    async def expand_movement(
        self,
        config: AdventureConfig,
        movement: Movement,
        previous_movements: List[Movement],
    ) -> MovementExpansion:
        ...

    async def refine_movement(
        self,
        config: AdventureConfig,
        movement: Movement,
        instruction: str,
    ) -> MovementExpansion:
        ...


SYSTEM_PROMPT = (
    "You are a game master's assistant for the Daggerheart tabletop RPG. "
    "Answer with a single JSON object and nothing else."
)


def _describe_config(config: AdventureConfig) -> str:
    frame = config.custom_frame_description or config.frame
    lines = [
        f"Frame: {frame}",
        f"Primary motif: {config.primary_motif}",
        f"Length: {config.length.value}",
        f"Party: {config.party_size} characters at level {config.party_level}",
        f"Difficulty: {config.difficulty.value}",
        f"Stakes: {config.stakes.value}",
    ]
    if config.focus:
        lines.append(f"Focus: {config.focus}")
    return "\n".join(lines)


def _describe_movement(movement: Movement) -> str:
    return f"- [{movement.type.value}] {movement.title}: {movement.description}"


class OpenAIAdventureGenerator:
    """AdventureGenerator backed by the OpenAI chat completions API."""

    def __init__(self, settings: LLMSettings, client: Optional[AsyncOpenAI] = None):
        if client is None:
            if not settings.openai_api_key:
                raise ProviderError(internal_message="OPENAI_API_KEY is not set")
            client = AsyncOpenAI(
                api_key=settings.openai_api_key.get_secret_value(),
                timeout=settings.llm_api_timeout,
            )
        self._client = client
        self._model = settings.openai_model
        self._temperature = settings.llm_temperature
        self._timeout = settings.llm_api_timeout

    async def _complete(self, prompt: str, schema: Type[ModelT]) -> ModelT:
        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=self._temperature,
                response_format={"type": "json_object"},
            )
        except openai.APITimeoutError as e:
            raise ProviderError(
                internal_message=f"OpenAI request timed out after {self._timeout}s"
            ) from e
        except openai.AuthenticationError as e:
            raise ProviderError(internal_message=f"OpenAI authentication failed: {e}") from e
        except openai.RateLimitError as e:
            raise ProviderError(internal_message=f"OpenAI rate limit exceeded: {e}") from e
        except openai.APIConnectionError as e:
            raise ProviderError(internal_message=f"OpenAI connection error: {e}") from e
        except openai.APIError as e:
            raise ProviderError(internal_message=f"OpenAI API error: {e}") from e

        if not response.choices or not response.choices[0].message.content:
            raise ProviderError(internal_message="OpenAI returned empty message content")

        content = response.choices[0].message.content
        try:
            return schema.model_validate(json.loads(content))
        except (json.JSONDecodeError, PydanticValidationError) as e:
            logger.warning(f"Discarding malformed {schema.__name__} from OpenAI: {e}")
            raise ProviderError(
                internal_message=f"OpenAI returned malformed {schema.__name__}"
            ) from e

    async def generate_scaffold(self, config: AdventureConfig) -> ScaffoldResult:
        prompt = (
            f"{_describe_config(config)}\n\n"
            "Outline an adventure as JSON with keys title, description, "
            "estimated_duration and movements. Each movement has title, type "
            "(combat, exploration, social or puzzle), description and estimated_time."
        )
        return await self._complete(prompt, ScaffoldResult)

    async def regenerate_movement(self, config, movement, locked_movements, feedback=None):
        context = "\n".join(_describe_movement(m) for m in locked_movements) or "(none)"
        prompt = (
            f"{_describe_config(config)}\n\n"
            f"Confirmed movements to stay consistent with:\n{context}\n\n"
            f"Replace this movement with a new one:\n{_describe_movement(movement)}\n"
        )
        if feedback:
            prompt += f"GM feedback: {feedback}\n"
        prompt += "Answer with JSON keys title, type, description and estimated_time."
        return await self._complete(prompt, ScaffoldMovement)

    async def expand_movement(self, config, movement, previous_movements):
        context = "\n".join(_describe_movement(m) for m in previous_movements) or "(none)"
        prompt = (
            f"{_describe_config(config)}\n\n"
            f"Earlier movements:\n{context}\n\n"
            f"Write the full scene for:\n{_describe_movement(movement)}\n"
            "Answer with JSON keys content (markdown scene text) and gm_notes."
        )
        return await self._complete(prompt, MovementExpansion)

    async def refine_movement(self, config, movement, instruction):
        prompt = (
            f"{_describe_config(config)}\n\n"
            f"Current scene '{movement.title}':\n{movement.content}\n\n"
            f"Revise it following this instruction: {instruction}\n"
            "Answer with JSON keys content and gm_notes."
        )
        return await self._complete(prompt, MovementExpansion)

    async def close(self) -> None:
        await self._client.close()


class UnconfiguredAdventureGenerator:
    """Stands in when no LLM key is configured; every call fails with ProviderError."""

    def _unavailable(self) -> ProviderError:
        return ProviderError(
            "Adventure generation is not configured",
            internal_message="OPENAI_API_KEY is not set",
        )

    async def generate_scaffold(self, config):
        raise self._unavailable()

    async def regenerate_movement(self, config, movement, locked_movements, feedback=None):
        raise self._unavailable()

    async def expand_movement(self, config, movement, previous_movements):
        raise self._unavailable()

    async def refine_movement(self, config, movement, instruction):
        raise self._unavailable()

    async def close(self) -> None:
        return None

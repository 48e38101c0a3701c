"""
MealSync - OpenAI Generator.

Generator backed by OpenAI through Instructor (structured outputs).
Instructor's own retries handle the common "almost valid JSON" case; the
gateway still validates whatever comes back.
"""

import logging

import instructor
from instructor.exceptions import InstructorRetryException
from openai import AsyncOpenAI

from mealsync.config import settings
from mealsync.errors import ValidationFailed
from mealsync.generation.gateway import (
    RESPONSE_SCHEMAS,
    GenerationKind,
    GenerationRequest,
    GenerationResponse,
)
from mealsync.generation.prompts import build_meal_plan_prompt, build_recipe_prompt

logger = logging.getLogger(__name__)

# Singleton client instance
_client: instructor.AsyncInstructor | None = None


def get_client() -> instructor.AsyncInstructor:
    """
    Get the Instructor-wrapped async OpenAI client.

    Uses singleton pattern to reuse connection.
    """
    global _client

    if _client is None:
        if not settings.openai_api_key:
            raise RuntimeError("OPENAI_API_KEY must be set to use the OpenAI generator")
        _client = instructor.from_openai(AsyncOpenAI(api_key=settings.openai_api_key))

    return _client


class OpenAIGenerator:
    """Generator implementation calling the chat completions API."""

    def __init__(
        self,
        client: instructor.AsyncInstructor | None = None,
        model: str | None = None,
        temperature: float | None = None,
        max_retries: int = 2,
    ):
        self._client = client
        self.model = model or settings.generation_model
        self.temperature = (
            temperature if temperature is not None else settings.generation_temperature
        )
        self.max_retries = max_retries

    def _system_prompt(self, request: GenerationRequest) -> str:
        if request.kind is GenerationKind.MEAL_PLAN:
            return build_meal_plan_prompt(request.context)
        return build_recipe_prompt(request.context)

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        client = self._client or get_client()
        response_model = RESPONSE_SCHEMAS[request.kind]

        try:
            result = await client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": self._system_prompt(request)},
                    {"role": "user", "content": request.prompt},
                ],
                response_model=response_model,
                max_retries=self.max_retries,
                temperature=self.temperature,
            )
        except InstructorRetryException as e:
            logger.warning(
                f"Model never produced a valid {request.kind.value} "
                f"after {self.max_retries} retries: {e}"
            )
            raise ValidationFailed(
                f"Generated {request.kind.value} did not match the expected structure"
            ) from e

        logger.debug(f"Generated {request.kind.value} with {self.model}")
        return GenerationResponse.ok(result.model_dump(mode="json"))

"""Course content generation through OpenRouter.

Wraps the OpenRouter chat-completions API with the prompts used to write
a multi-week plan, nutrition advice and single-day or single-week
rewrites. Retries are left to the arq task that calls the generator; a
failed call raises ContentGenerationError.
"""

import logging
import time
from typing import Literal, Optional

import httpx
from pydantic import BaseModel, Field

from app.core.config import settings
from app.core.exceptions import GenerationFailure
from app.schemas.course import CourseOptions
from app.services.pricing import PdfMode, RegenerationScope

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are an experienced strength and conditioning coach who writes safe, "
    "progressive training plans. Answer in Markdown. Use '## Week N' headings for "
    "weeks and '### Day N' headings for training days. Every exercise lists sets, "
    "reps (or time), rest and one coaching cue."
)


class ContentGenerationError(GenerationFailure):
    """Raised when the content provider fails or returns nothing usable."""


class ChatMessage(BaseModel):
    """A single chat message."""

    role: Literal["system", "user", "assistant"] = Field(..., description="Message role")
    content: str = Field(..., description="Message content")


class CompletionResult(BaseModel):
    content: str = Field(..., description="Generated content")
    model: str = Field(..., description="Model used")
    finish_reason: Optional[str] = Field(default=None)
    latency_ms: int = Field(default=0)


class GeneratedContent(BaseModel):
    """Everything a course row needs from one generation."""

    content: str
    images: list[str] = Field(default_factory=list)
    nutrition_advice: Optional[str] = None


def build_course_prompt(options: CourseOptions, notes: Optional[str] = None) -> str:
    lines = [
        f"Write a {options.weeks}-week training plan with "
        f"{options.sessions_per_week} sessions per week for a {options.gender.value} client.",
        f"Workout styles: {', '.join(options.workout_types) or 'coach choice'}.",
        f"Target muscles: {', '.join(options.target_muscles) or 'full body'}.",
    ]
    if options.injury_safe:
        lines.append("Keep every exercise joint-friendly and offer a regression for each movement.")
    if options.special_equipment:
        lines.append("The client has access to a fully equipped gym.")
    if options.pdf == PdfMode.ILLUSTRATED:
        lines.append("Mark the key exercises that deserve an illustration with [illustration].")
    if notes or options.notes:
        lines.append(f"Client notes: {notes or options.notes}")
    lines.append("Start with a one-paragraph overview, then the weeks in order.")
    return "\n".join(lines)


class CourseContentGenerator:
    """OpenRouter-backed writer for course content."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the generator.

        Args:
            api_key: OpenRouter API key (defaults to settings)
            model: Model identifier (defaults to settings.CONTENT_MODEL)
            base_url: API base URL (defaults to settings)
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.api_key = api_key if api_key is not None else settings.OPENROUTER_API_KEY
        self.model = model or settings.CONTENT_MODEL
        self.base_url = (base_url or settings.OPENROUTER_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.CONTENT_TIMEOUT_SECONDS
        self._transport = transport

    def _get_headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "HTTP-Referer": settings.FRONTEND_URL,
            "X-Title": settings.PROJECT_NAME,
        }

    async def complete(
        self,
        messages: list[ChatMessage],
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
    ) -> CompletionResult:
        """Run one chat completion.

        Raises:
            ContentGenerationError: Missing key, HTTP failure or empty answer
        """
        if not self.api_key:
            raise ContentGenerationError("OpenRouter API key not configured")

        payload = {
            "model": self.model,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
            "temperature": temperature,
        }
        if max_tokens:
            payload["max_tokens"] = max_tokens

        start_time = time.time()
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    f"{self.base_url}/chat/completions",
                    headers=self._get_headers(),
                    json=payload,
                )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            logger.warning(f"Content request to {self.model} failed: {e}")
            raise ContentGenerationError(f"Content provider request failed: {e}") from e

        try:
            choice = data["choices"][0]
            content = (choice["message"]["content"] or "").strip()
        except (KeyError, IndexError, TypeError) as e:
            raise ContentGenerationError("Malformed response from content provider") from e

        if not content:
            raise ContentGenerationError("Content provider returned an empty answer")

        latency_ms = int((time.time() - start_time) * 1000)
        logger.info(f"Completion from {self.model}: {len(content)} chars in {latency_ms}ms")

        return CompletionResult(
            content=content,
            model=data.get("model", self.model),
            finish_reason=choice.get("finish_reason"),
            latency_ms=latency_ms,
        )

    async def generate_course(
        self, options: CourseOptions, notes: Optional[str] = None
    ) -> GeneratedContent:
        """Write the full plan (and nutrition advice when requested)."""
        plan = await self.complete(
            [
                ChatMessage(role="system", content=SYSTEM_PROMPT),
                ChatMessage(role="user", content=build_course_prompt(options, notes)),
            ]
        )

        nutrition_advice = None
        if options.nutrition_tips:
            nutrition_advice = await self.generate_nutrition_advice(options)

        return GeneratedContent(content=plan.content, nutrition_advice=nutrition_advice)

    async def generate_nutrition_advice(self, options: CourseOptions) -> str:
        result = await self.complete(
            [
                ChatMessage(role="system", content="You are a sports nutritionist. Answer in Markdown."),
                ChatMessage(
                    role="user",
                    content=(
                        f"Give practical nutrition guidance for a {options.gender.value} client "
                        f"training {options.sessions_per_week} times per week "
                        f"({', '.join(options.workout_types) or 'general fitness'}). "
                        "Cover daily protein, hydration, and pre/post-workout meals."
                    ),
                ),
            ],
            temperature=0.5,
        )
        return result.content

    async def regenerate_section(
        self,
        content: str,
        options: CourseOptions,
        scope: RegenerationScope,
        week: int,
        day: Optional[int] = None,
    ) -> str:
        """Rewrite one week or one day of an existing plan.

        Returns the replacement section including its heading.
        """
        if scope == RegenerationScope.DAY:
            target = f"Day {day} of Week {week}"
            heading = f"### Day {day}"
        else:
            target = f"Week {week}"
            heading = f"## Week {week}"

        result = await self.complete(
            [
                ChatMessage(role="system", content=SYSTEM_PROMPT),
                ChatMessage(role="user", content=build_course_prompt(options)),
                ChatMessage(role="assistant", content=content),
                ChatMessage(
                    role="user",
                    content=(
                        f"Rewrite {target} with different exercises of similar difficulty. "
                        f"Return only that section, starting with the heading '{heading}'."
                    ),
                ),
            ],
            temperature=0.9,
        )
        return result.content


def get_content_generator() -> CourseContentGenerator:
    return CourseContentGenerator()

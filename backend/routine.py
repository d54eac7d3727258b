"""
AI flows: routine-to-tasks conversion and priority suggestion.

The model is asked for JSON matching a fixed shape. Replies are parsed
strictly with pydantic; anything that does not validate is rejected as a
whole rather than patched up. Routine candidates are then filtered locally
so that only tasks due strictly after "now" reach the caller, whatever the
model returned.
"""
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

import anthropic
from pydantic import ValidationError

import config
from models import ParsedTask, PrioritySuggestion, RoutineParsingOutput
from prompts import (
    PRIORITY_SYSTEM_PROMPT,
    PRIORITY_USER_PROMPT,
    ROUTINE_SYSTEM_PROMPT,
    ROUTINE_USER_PROMPT,
)

logger = logging.getLogger(__name__)

MIN_ROUTINE_LENGTH = 20
MAX_ROUTINE_LENGTH = 1000

_client: Optional[anthropic.AsyncAnthropic] = None


class AIServiceError(Exception):
    """The completion service could not be reached or returned an error."""


class InvalidAIResponse(AIServiceError):
    """The completion service answered, but not with data of the expected shape."""


class RoutineFailure(str, Enum):
    INVALID_INPUT = "invalid_input"
    AI_ERROR = "ai_error"
    INVALID_RESPONSE = "invalid_response"
    NO_TASKS = "no_tasks"
    NO_FUTURE_TASKS = "no_future_tasks"


@dataclass(frozen=True)
class RoutineResult:
    ok: bool
    tasks: tuple[ParsedTask, ...] = ()
    discarded: int = 0
    kind: Optional[RoutineFailure] = None
    reason: Optional[str] = None

    @classmethod
    def success(cls, tasks, discarded: int = 0) -> "RoutineResult":
        return cls(ok=True, tasks=tuple(tasks), discarded=discarded)

    @classmethod
    def failure(cls, kind: RoutineFailure, reason: str, discarded: int = 0) -> "RoutineResult":
        return cls(ok=False, kind=kind, reason=reason, discarded=discarded)


def get_client() -> anthropic.AsyncAnthropic:
    global _client
    if _client is None:
        _client = anthropic.AsyncAnthropic(api_key=config.ANTHROPIC_API_KEY)
    return _client


def strip_code_fence(text: str) -> str:
    """Strip a markdown code block around the reply, if present."""
    text = text.strip()
    if text.startswith("```"):
        lines = text.split("\n")
        lines = lines[1:]  # Remove first line (```json)
        if lines and lines[-1].strip() == "```":
            lines = lines[:-1]  # Remove last line (```)
        text = "\n".join(lines)
    return text


def _decode_json(text: str):
    try:
        return json.loads(strip_code_fence(text))
    except json.JSONDecodeError as e:
        raise InvalidAIResponse(f"reply is not valid JSON: {e}") from e


def parse_routine_response(text: str) -> list[ParsedTask]:
    """Validate a routine reply. Raises InvalidAIResponse unless every task is well-formed."""
    data = _decode_json(text)
    try:
        return RoutineParsingOutput.model_validate(data).tasks
    except ValidationError as e:
        raise InvalidAIResponse(f"reply does not match the task schema: {e.error_count()} errors") from e


def parse_priority_response(text: str) -> PrioritySuggestion:
    data = _decode_json(text)
    try:
        return PrioritySuggestion.model_validate(data)
    except ValidationError as e:
        raise InvalidAIResponse(f"reply does not match the priority schema: {e.error_count()} errors") from e


def filter_future_tasks(candidates, now: datetime) -> tuple[list[ParsedTask], int]:
    """Keep candidates due strictly after now. Returns (kept, number discarded)."""
    kept = [task for task in candidates if task.due_date > now]
    return kept, len(candidates) - len(kept)


def format_current_date(now: datetime) -> str:
    """Readable date with zone for the prompt, e.g. 'Sunday, September 28, 2025, 12:10 PM UTC'."""
    return now.strftime("%A, %B %d, %Y, %I:%M %p %Z").strip()


async def _complete(client, system_prompt: str, user_prompt: str, max_tokens: int) -> str:
    try:
        response = await client.messages.create(
            model=config.ANTHROPIC_MODEL,
            max_tokens=max_tokens,
            system=system_prompt,
            messages=[{"role": "user", "content": user_prompt}]
        )
    except anthropic.APIError as e:
        raise AIServiceError(f"API error: {e}") from e

    text = "".join(getattr(block, "text", "") for block in response.content)
    logger.debug("Claude response: %s", text)
    return text


async def convert_routine(
    routine_description: str,
    *,
    now: Optional[datetime] = None,
    client=None,
) -> RoutineResult:
    """Turn a free-text routine into candidate tasks, all due strictly after now."""
    description = (routine_description or "").strip()
    if len(description) < MIN_ROUTINE_LENGTH:
        return RoutineResult.failure(
            RoutineFailure.INVALID_INPUT,
            "Please describe your routine in more detail.",
        )
    if len(description) > MAX_ROUTINE_LENGTH:
        return RoutineResult.failure(
            RoutineFailure.INVALID_INPUT,
            f"Routine description must be at most {MAX_ROUTINE_LENGTH} characters.",
        )

    if client is None:
        if not config.ai_configured():
            return RoutineResult.failure(RoutineFailure.AI_ERROR, "API key not configured")
        client = get_client()

    now = now or datetime.now(timezone.utc)
    system_prompt = ROUTINE_SYSTEM_PROMPT.format(current_date=format_current_date(now))
    user_prompt = ROUTINE_USER_PROMPT.format(routine_description=description)

    try:
        reply = await _complete(client, system_prompt, user_prompt, max_tokens=4096)
        candidates = parse_routine_response(reply)
    except InvalidAIResponse as e:
        logger.warning("Routine parsing produced an invalid reply: %s", e)
        return RoutineResult.failure(RoutineFailure.INVALID_RESPONSE, str(e))
    except AIServiceError as e:
        logger.error("Routine parsing error: %s", e)
        return RoutineResult.failure(RoutineFailure.AI_ERROR, str(e))

    if not candidates:
        return RoutineResult.failure(
            RoutineFailure.NO_TASKS,
            "The AI could not identify any tasks. Please try rephrasing your routine.",
        )

    tasks, discarded = filter_future_tasks(candidates, now)
    if discarded:
        logger.info("Discarded %d routine tasks with past due dates", discarded)
    if not tasks:
        return RoutineResult.failure(
            RoutineFailure.NO_FUTURE_TASKS,
            "The AI could not identify any future tasks. Please try rephrasing your routine.",
            discarded=discarded,
        )
    return RoutineResult.success(tasks, discarded=discarded)


async def suggest_priority(task_description: str, *, client=None) -> PrioritySuggestion:
    """Ask the model for a priority. Raises AIServiceError (or InvalidAIResponse) on failure."""
    if client is None:
        if not config.ai_configured():
            raise AIServiceError("API key not configured")
        client = get_client()

    reply = await _complete(
        client,
        PRIORITY_SYSTEM_PROMPT.format(),
        PRIORITY_USER_PROMPT.format(task_description=task_description.strip()),
        max_tokens=512,
    )
    return parse_priority_response(reply)

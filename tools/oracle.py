"""
Content Oracle — The single boundary between the narrative engine and Gemini.

Every structured request goes through `OracleClient.invoke()`:
  1. Rate-limit, then send the prompt with a JSON response type.
  2. Strip markdown fences and validate against the caller's pydantic model,
     plus an optional cross-field check.
  3. On failure retry exactly once after a fixed backoff step.
  4. Return a tagged result instead of raising: OracleOk, OracleSchemaError
     or OracleUnavailable. Callers decide whether to fail closed or to
     `unwrap()` and propagate.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, Type, TypeVar, Union

from google import genai
from pydantic import BaseModel, ValidationError

from tools.errors import OracleUnavailableError, SchemaValidationFailed

logger = logging.getLogger('Oracle')

T = TypeVar("T", bound=BaseModel)

_FENCE_RE = re.compile(r"^```(\w*)?\s*\n?(.*?)\n?\s*```$", re.DOTALL)

# HTTP codes that mean the key or project is misconfigured; retrying will not help
_AUTH_CODES = (401, 403)


def strip_code_fences(text: str) -> str:
    """Remove a surrounding ```json ... ``` fence if the model added one."""
    text = text.strip()
    match = _FENCE_RE.match(text)
    if match and match.group(2):
        return match.group(2).strip()
    return text


@dataclass(frozen=True)
class OracleOk(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True)
class OracleSchemaError:
    call_site: str
    message: str
    raw_text: Optional[str] = None

    @property
    def ok(self) -> bool:
        return False

    def unwrap(self):
        raise SchemaValidationFailed(self.call_site, self.message)


@dataclass(frozen=True)
class OracleUnavailable:
    call_site: str
    message: str

    @property
    def ok(self) -> bool:
        return False

    def unwrap(self):
        raise OracleUnavailableError(self.call_site, self.message)


OracleResult = Union[OracleOk, OracleSchemaError, OracleUnavailable]


def _is_auth_failure(error: Exception) -> bool:
    return getattr(error, "code", None) in _AUTH_CODES


class OracleClient:
    """Wraps a `genai.Client` with validation, one retry and tagged results.

    Args:
        client: A `genai.Client` (or anything exposing `aio.models.generate_content`).
            None means the oracle is unavailable and every call says so.
        model_id: Gemini model to use.
        limiter: Optional RateLimiter awaited before each request.
        max_attempts: Total attempts per call (one retry by default).
        retry_backoff: Seconds per attempt number to sleep before retrying.
        temperature: Default sampling temperature.
    """

    def __init__(
        self,
        client,
        model_id: str = "gemini-2.0-flash",
        limiter=None,
        max_attempts: int = 2,
        retry_backoff: float = 1.0,
        temperature: float = 0.7,
    ):
        self.client = client
        self.model_id = model_id
        self.limiter = limiter
        self.max_attempts = max_attempts
        self.retry_backoff = retry_backoff
        self.temperature = temperature

    @property
    def available(self) -> bool:
        return self.client is not None

    async def invoke(
        self,
        prompt: str,
        schema: Type[T],
        call_site: str,
        *,
        check: Optional[Callable[[T], Optional[str]]] = None,
        system_instruction: Optional[str] = None,
        temperature: Optional[float] = None,
    ) -> OracleResult:
        """Request a structured result from the oracle.

        Args:
            prompt: Full prompt text, including the JSON schema description.
            schema: Pydantic model the response must validate against.
            call_site: Human-readable name of the caller, used in logs and errors.
            check: Optional extra predicate. Returns an error message, or None if the value is acceptable.
            system_instruction: Optional system prompt.
            temperature: Overrides the client default.

        Returns:
            OracleOk with the validated model, OracleSchemaError, or OracleUnavailable.
        """
        if not self.client:
            logger.warning(f"No oracle client configured; {call_site} unavailable.")
            return OracleUnavailable(call_site, f"Oracle not configured for {call_site}.")

        last_error = "unknown error"
        last_raw: Optional[str] = None
        schema_failure = True

        for attempt in range(1, self.max_attempts + 1):
            try:
                if self.limiter is not None:
                    await self.limiter.acquire(call_site)

                response = await self.client.aio.models.generate_content(
                    model=self.model_id,
                    contents=prompt,
                    config=genai.types.GenerateContentConfig(
                        system_instruction=system_instruction,
                        temperature=self.temperature if temperature is None else temperature,
                        response_mime_type="application/json",
                    ),
                )

                last_raw = (response.text or "").strip()
                if not last_raw:
                    raise ValueError("Oracle returned an empty response.")

                value = schema.model_validate_json(strip_code_fences(last_raw))
                if check is not None:
                    problem = check(value)
                    if problem:
                        raise ValueError(problem)
                return OracleOk(value)

            except (ValidationError, ValueError) as e:
                schema_failure = True
                last_error = str(e)
            except Exception as e:
                if _is_auth_failure(e):
                    logger.error(f"Oracle rejected credentials for {call_site}: {e}")
                    return OracleUnavailable(call_site, f"Oracle rejected credentials for {call_site}: {e}")
                schema_failure = False
                last_error = str(e) or type(e).__name__

            if attempt < self.max_attempts:
                logger.warning(
                    f"Attempt {attempt}/{self.max_attempts} failed for {call_site}: {last_error}. Retrying..."
                )
                await asyncio.sleep(self.retry_backoff * attempt)

        message = (
            f"Failed to get valid response for {call_site} after "
            f"{self.max_attempts} attempts. Last error: {last_error}"
        )
        logger.error(message)
        if schema_failure:
            return OracleSchemaError(call_site, message, last_raw)
        return OracleUnavailable(call_site, message)


def describe_failure(result: Any) -> str:
    """Player-facing narration for a failed oracle result or OracleCallFailed."""
    if isinstance(result, (OracleUnavailable, OracleUnavailableError)):
        return "The oracle is silent. The world holds its breath; try again in a moment."
    return "The details are hazy. Whatever stirred fades before it takes shape; try again."

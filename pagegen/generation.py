import json
import re
from time import time
from typing import Any, AsyncGenerator, Optional, Tuple

from pagegen.ai_engine import AIEngine, AILogger
from pagegen.errors import (
    ContractError,
    EmptyResponse,
    GenerationError,
    IncompleteResponse,
    MalformedResponse,
    ServiceError,
)
from pagegen.models import GenerationRequest, GenerationResult
from pagegen.normalizer import normalize_result
from pagegen.prompts import RESPONSE_SCHEMA, SYSTEM_PROMPT, build_generation_prompt


REQUIRED_SECTIONS = ("pages", "adCreative")


def parse_generation_response(text: str) -> dict:
    """Parse the raw response body into a dict that carries both required sections.

    Raises EmptyResponse, MalformedResponse or IncompleteResponse.
    """
    raw = (text or "").strip()
    if not raw:
        raise EmptyResponse("The AI service returned an empty response.")

    # Strip markdown code fences if the model wrapped its output
    raw = re.sub(r'^```(?:json)?\s*\n?', '', raw)
    raw = re.sub(r'\n?```\s*$', '', raw)

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise MalformedResponse(
            "The AI service returned a response that is not valid JSON.",
            detail=f"{e}; body starts with {raw[:200]!r}",
        ) from e
    if not isinstance(data, dict):
        raise MalformedResponse(
            "The AI service returned JSON that is not an object.",
            detail=f"top-level type {type(data).__name__}",
        )

    missing = [section for section in REQUIRED_SECTIONS if data.get(section) is None]
    if missing:
        raise IncompleteResponse(
            "The AI response is missing the pages or adCreative content.",
            detail=f"missing sections: {', '.join(missing)}",
        )
    return data


class GenerationClient:
    """One generation call against an engine, with the response contract enforced."""

    def __init__(
        self, engine: AIEngine, engine_name: str = "engine", *,
        temperature: float = 0.7, max_tokens: int = 16384,
    ):
        self.engine = engine
        self.engine_name = engine_name
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def stream_text(self, system_prompt: str, user_prompt: str) -> AsyncGenerator[str, None]:
        try:
            async for chunk in self.engine.generate_stream(
                system_prompt, user_prompt,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                response_schema=RESPONSE_SCHEMA,
            ):
                yield chunk
        except GenerationError:
            raise
        except Exception as e:
            raise ServiceError(f"AI service call failed: {e}", detail=repr(e)) from e

    def complete(self, text: str, request_size: int, started: float) -> GenerationResult:
        """Validate and normalize a fully received response body."""
        try:
            result = normalize_result(parse_generation_response(text))
        except ContractError as e:
            AILogger.log_event(self.engine_name, time() - started, request_size, False, e.kind)
            raise
        AILogger.log_event(self.engine_name, time() - started, request_size, True)
        return result

    async def run(self, request: GenerationRequest) -> AsyncGenerator[Tuple[str, Any], None]:
        """Drive one generation, yielding progress events and finally the result.

        Events:
          - ("progress", chars_received_so_far)
          - ("result", GenerationResult), always the last event on success
        Failures raise GenerationError subclasses.
        """
        user_prompt = build_generation_prompt(request)
        request_size = len(SYSTEM_PROMPT) + len(user_prompt)
        started = time()
        chunks: list[str] = []
        received = 0
        try:
            async for chunk in self.stream_text(SYSTEM_PROMPT, user_prompt):
                chunks.append(chunk)
                received += len(chunk)
                yield "progress", received
        except ServiceError as e:
            AILogger.log_event(self.engine_name, time() - started, request_size, False, e.kind)
            raise
        yield "result", self.complete("".join(chunks), request_size, started)

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        result: Optional[GenerationResult] = None
        async for kind, payload in self.run(request):
            if kind == "result":
                result = payload
        return result

import json
import asyncio
import logging
import os
import httpx
from abc import ABC, abstractmethod
from typing import AsyncGenerator
from dotenv import load_dotenv

from pagegen.models import FUNNEL_STAGES
from pagegen.prompts import SCHEMA_NAME

load_dotenv()

logger = logging.getLogger(__name__)


class AIEngineError(Exception):
    """Raised by an engine when the upstream service fails or refuses the request."""


class AILogger:
    @staticmethod
    def log_event(engine_name: str, duration: float, request_size: int, is_valid: bool, detail: str = ""):
        status = "SUCCESS" if is_valid else "FAILED/INVALID"
        detail_str = f" | {detail}" if detail else ""
        logger.info(
            "[AI_TRACE] Engine: %s | Latency: %.2fs | Req: %d chars | Status: %s%s",
            engine_name, duration, request_size, status, detail_str,
        )


class AIEngine(ABC):
    @abstractmethod
    async def generate_stream(
        self, system_prompt: str, user_prompt: str, *,
        temperature: float = 0.7, max_tokens: int = 16384,
        response_schema: dict | None = None,
    ) -> AsyncGenerator[str, None]:
        pass


class MockAIEngine(AIEngine):
    """Offline engine. Returns a deterministic, contract-valid funnel for any prompt."""

    def _build_response(self, user_prompt: str) -> str:
        pages = {
            stage.value: (
                f'<!DOCTYPE html><html><head><meta charset="utf-8"><title>{stage.value.upper()}</title></head>'
                f'<body class="bg-white"><main class="max-w-3xl mx-auto p-6">'
                f'<h1 class="text-3xl font-bold">Mock {stage.value.upper()} page</h1>'
                f'<p>Connect a real LLM engine to generate this page.</p>'
                f'<a href="#" target="_blank" rel="noopener noreferrer">Learn more</a>'
                f'</main><footer><a href="#">Terms of Use</a> <a href="#">Disclaimer</a> '
                f'<a href="#">Privacy Policy</a></footer></body></html>'
            )
            for stage in FUNNEL_STAGES
        }
        ad_creative = {}
        for stage in FUNNEL_STAGES:
            tag = stage.value.upper()
            ad_creative[stage.value] = {
                "keywords": {
                    "broad": [f"{stage.value} broad keyword {i}" for i in range(1, 6)],
                    "phrase": [f"{stage.value} phrase keyword {i}" for i in range(1, 6)],
                    "exact": [f"{stage.value} exact keyword {i}" for i in range(1, 6)],
                },
                "adAssets": {
                    "headlines": [f"{tag} Headline {i}" for i in range(1, 16)],
                    "descriptions": [f"{tag} mock description number {i}." for i in range(1, 5)],
                    "callouts": [f"{tag} Callout {i}" for i in range(1, 5)],
                    "sitelinks": [
                        {
                            "title": f"{tag} Link {i}",
                            "description1": "Mock sitelink line one",
                            "description2": "Mock sitelink line two",
                        }
                        for i in range(1, 5)
                    ],
                },
            }
        return json.dumps({"pages": pages, "adCreative": ad_creative})

    async def generate_stream(
        self, system_prompt: str, user_prompt: str, *,
        temperature: float = 0.7, max_tokens: int = 16384,
        response_schema: dict | None = None,
    ) -> AsyncGenerator[str, None]:
        response_text = self._build_response(user_prompt)
        for i in range(0, len(response_text), 256):
            yield response_text[i:i + 256]
            await asyncio.sleep(0)


class HTTPAIEngine(AIEngine):
    """OpenAI-compatible chat completions endpoint, streamed over SSE."""

    def __init__(self):
        self.api_key = os.getenv("LLM_API_KEY", "no-key")
        self.base_url = os.getenv("LLM_BASE_URL", "https://api.openai.com/v1")
        self.model = os.getenv("LLM_MODEL", "gpt-4o-mini")
        self.timeout = float(os.getenv("LLM_TIMEOUT", "300.0"))

    def build_payload(
        self, system_prompt: str, user_prompt: str, *,
        temperature: float, max_tokens: int, response_schema: dict | None,
    ) -> dict:
        payload = {
            "model": self.model,
            "messages": [{"role": "system", "content": system_prompt}, {"role": "user", "content": user_prompt}],
            "stream": True,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if response_schema is not None:
            payload["response_format"] = {
                "type": "json_schema",
                "json_schema": {"name": SCHEMA_NAME, "schema": response_schema, "strict": False},
            }
        else:
            payload["response_format"] = {"type": "json_object"}
        return payload

    async def generate_stream(
        self, system_prompt: str, user_prompt: str, *,
        temperature: float = 0.7, max_tokens: int = 16384,
        response_schema: dict | None = None,
    ) -> AsyncGenerator[str, None]:
        payload = self.build_payload(
            system_prompt, user_prompt,
            temperature=temperature, max_tokens=max_tokens, response_schema=response_schema,
        )
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            async with client.stream("POST", f"{self.base_url}/chat/completions", json=payload, headers=headers) as response:
                if response.status_code >= 400:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    raise AIEngineError(f"LLM endpoint returned HTTP {response.status_code}: {body[:500]}")
                async for line in response.aiter_lines():
                    if not line.startswith("data: ") or line == "data: [DONE]":
                        continue
                    try:
                        chunk = json.loads(line[6:])
                        content = chunk["choices"][0].get("delta", {}).get("content", "")
                    except (json.JSONDecodeError, KeyError, IndexError):
                        continue
                    if content:
                        yield content


_GEMINI_SCHEMA_KEYS = ("description", "required", "minItems", "maxItems", "maxLength")


def to_gemini_schema(schema: dict) -> dict:
    """Translate a JSON-Schema dict into the OpenAPI subset Gemini accepts."""
    out: dict = {"type": schema["type"].upper()}
    for key in _GEMINI_SCHEMA_KEYS:
        if key in schema:
            out[key] = schema[key]
    if "properties" in schema:
        out["properties"] = {name: to_gemini_schema(sub) for name, sub in schema["properties"].items()}
    if "items" in schema:
        out["items"] = to_gemini_schema(schema["items"])
    return out


class GeminiAIEngine(AIEngine):
    """Google Generative Language REST API with JSON-mode structured output."""

    def __init__(self):
        self.api_key = os.getenv("GEMINI_API_KEY") or os.getenv("LLM_API_KEY", "no-key")
        self.base_url = os.getenv("GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta")
        self.model = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
        self.timeout = float(os.getenv("LLM_TIMEOUT", "300.0"))

    def build_payload(
        self, system_prompt: str, user_prompt: str, *,
        temperature: float, max_tokens: int, response_schema: dict | None,
    ) -> dict:
        generation_config: dict = {
            "temperature": temperature,
            "maxOutputTokens": max_tokens,
            "responseMimeType": "application/json",
        }
        if response_schema is not None:
            generation_config["responseSchema"] = to_gemini_schema(response_schema)
        return {
            "systemInstruction": {"parts": [{"text": system_prompt}]},
            "contents": [{"role": "user", "parts": [{"text": user_prompt}]}],
            "generationConfig": generation_config,
        }

    async def generate_stream(
        self, system_prompt: str, user_prompt: str, *,
        temperature: float = 0.7, max_tokens: int = 16384,
        response_schema: dict | None = None,
    ) -> AsyncGenerator[str, None]:
        payload = self.build_payload(
            system_prompt, user_prompt,
            temperature=temperature, max_tokens=max_tokens, response_schema=response_schema,
        )
        url = f"{self.base_url}/models/{self.model}:streamGenerateContent"
        headers = {"x-goog-api-key": self.api_key, "Content-Type": "application/json"}
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            async with client.stream("POST", url, params={"alt": "sse"}, json=payload, headers=headers) as response:
                if response.status_code >= 400:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    raise AIEngineError(f"Gemini returned HTTP {response.status_code}: {body[:500]}")
                async for line in response.aiter_lines():
                    if not line.startswith("data: "):
                        continue
                    try:
                        chunk = json.loads(line[6:])
                        parts = chunk["candidates"][0]["content"]["parts"]
                    except (json.JSONDecodeError, KeyError, IndexError):
                        continue
                    for part in parts:
                        text = part.get("text", "")
                        if text:
                            yield text

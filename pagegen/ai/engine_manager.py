from __future__ import annotations

import logging
import os
import threading
from typing import Dict, Optional

from pagegen.ai_engine import AIEngine, MockAIEngine, HTTPAIEngine, GeminiAIEngine

logger = logging.getLogger(__name__)

ENGINE_TYPES = {
    "mock": MockAIEngine,
    "http": HTTPAIEngine,
    "gemini": GeminiAIEngine,
}


class AIEngineManager:
    """Registry of generation engines; one of them serves /generate at a time."""

    def __init__(self) -> None:
        self._engines: Dict[str, AIEngine] = {}
        self._active_name: Optional[str] = None
        self._lock = threading.RLock()

    @classmethod
    def from_env(cls) -> "AIEngineManager":
        """Register the mock engine plus the provider selected by ENABLE_LLM / LLM_ENGINE."""
        manager = cls()
        manager.register("mock", MockAIEngine())
        enable_llm = os.getenv("ENABLE_LLM", "false").lower() == "true"
        engine_type = os.getenv("LLM_ENGINE", "gemini").lower()
        if not enable_llm:
            manager.set_active("mock")
            return manager
        if engine_type not in ENGINE_TYPES or engine_type == "mock":
            logger.warning("Unknown LLM_ENGINE %r, falling back to mock", engine_type)
            manager.set_active("mock")
            return manager
        manager.register(engine_type, ENGINE_TYPES[engine_type]())
        manager.set_active(engine_type)
        return manager

    def register(self, name: str, engine: AIEngine) -> None:
        with self._lock:
            self._engines[name] = engine
            logger.info("Registered engine %r", name)

    def set_active(self, name: str) -> None:
        with self._lock:
            if name not in self._engines:
                raise ValueError(f"Unknown engine: {name!r}. Available: {list(self._engines)}")
            self._active_name = name
            logger.info("Active engine set to %r", name)

    def get_active(self) -> AIEngine:
        with self._lock:
            if self._active_name is None:
                raise RuntimeError("No active AI engine configured")
            return self._engines[self._active_name]

    @property
    def active_name(self) -> Optional[str]:
        return self._active_name

    def list_engines(self) -> list[dict]:
        with self._lock:
            type_names = {engine_cls: name for name, engine_cls in ENGINE_TYPES.items()}
            return [
                {
                    "name": name,
                    "type": type_names.get(type(engine), "custom"),
                    "model": getattr(engine, "model", None),
                    "active": name == self._active_name,
                }
                for name, engine in self._engines.items()
            ]

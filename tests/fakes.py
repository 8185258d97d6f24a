from typing import List, Optional

from pagegen.ai_engine import AIEngine
from pagegen.errors import StorageError
from pagegen.storage import InMemoryKeyValueStore


class ScriptedEngine(AIEngine):
    """Yields the given chunks, then raises ``error`` if one was given."""

    def __init__(self, chunks: List[str] = (), error: Optional[Exception] = None):
        self.chunks = list(chunks)
        self.error = error
        self.calls: List[dict] = []

    async def generate_stream(self, system_prompt, user_prompt, **kwargs):
        self.calls.append({"system_prompt": system_prompt, "user_prompt": user_prompt, **kwargs})
        for chunk in self.chunks:
            yield chunk
        if self.error is not None:
            raise self.error


class ReadOnlyStore(InMemoryKeyValueStore):
    """Reads work; every write fails."""

    def set(self, key, value):
        raise StorageError("disk full")

    def delete(self, key):
        raise StorageError("disk full")

import json
import os
import sys
import tempfile
from pathlib import Path

import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT_DIR))

os.environ.setdefault("ENABLE_LLM", "false")
os.environ.setdefault("PAGEGEN_DB_PATH", os.path.join(tempfile.mkdtemp(prefix="pagegen-test-"), "pagegen.db"))
os.environ.setdefault("LOG_LEVEL", "WARNING")

from pagegen.ai_engine import MockAIEngine  # noqa: E402
from pagegen.models import GenerationRequest  # noqa: E402


@pytest.fixture()
def raw_funnel() -> dict:
    """A complete, contract-valid response object as the AI service would send it."""
    return json.loads(MockAIEngine()._build_response(""))


@pytest.fixture()
def generation_request() -> GenerationRequest:
    return GenerationRequest(
        primary_link="https://x.com/aff",
        product_description="Ultra-light trail running shoes for beginners.",
    )

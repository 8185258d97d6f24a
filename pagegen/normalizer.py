"""Map the validated AI response onto pages and ad creative keyed by funnel stage."""

import logging
from typing import List

from pydantic import ValidationError

from pagegen.errors import MalformedResponse
from pagegen.models import FUNNEL_STAGES, AdCreative, GenerationResult, Page
from pagegen.prompts import (
    CALLOUT_COUNT,
    DESCRIPTION_COUNT,
    DESCRIPTION_MAX_CHARS,
    HEADLINE_COUNT,
    HEADLINE_MAX_CHARS,
    KEYWORD_MATCH_TYPES,
    KEYWORDS_MAX,
    KEYWORDS_MIN,
    SITELINK_COUNT,
)

logger = logging.getLogger(__name__)


def normalize_result(raw: dict) -> GenerationResult:
    """Build the three Pages and the AdCreative from a raw response object.

    Page HTML is copied as-is and the ad creative is passed through without
    edits. A missing stage or mistyped field raises MalformedResponse instead
    of being filled with empty content.
    """
    try:
        pages_raw = raw["pages"]
        pages = {
            stage: Page(stage=stage, html_content=pages_raw[stage.value])
            for stage in FUNNEL_STAGES
        }
        ad_creative = AdCreative.model_validate(raw["adCreative"])
    except (KeyError, TypeError, ValidationError) as e:
        raise MalformedResponse(
            "The AI response does not match the expected structure.",
            detail=f"{type(e).__name__}: {e}",
        ) from e

    warnings = check_contract_hints(ad_creative)
    if warnings:
        logger.warning("[CONTRACT] %d ad-asset hint(s) not met: %s", len(warnings), "; ".join(warnings))
    return GenerationResult(pages=pages, ad_creative=ad_creative, warnings=warnings)


def _count_hint(label: str, items: list, expected: int) -> List[str]:
    if len(items) != expected:
        return [f"{label}: expected {expected}, got {len(items)}"]
    return []


def _length_hints(label: str, items: List[str], max_chars: int) -> List[str]:
    return [
        f"{label} #{i}: {len(text)} characters exceeds {max_chars}"
        for i, text in enumerate(items, start=1)
        if len(text) > max_chars
    ]


def check_contract_hints(ad_creative: AdCreative) -> List[str]:
    """Report (never enforce) the per-stage counts and character limits asked of the model."""
    warnings: List[str] = []
    for stage in FUNNEL_STAGES:
        creative = ad_creative.for_stage(stage)
        assets = creative.ad_assets
        prefix = stage.value
        warnings += _count_hint(f"{prefix} headlines", assets.headlines, HEADLINE_COUNT)
        warnings += _length_hints(f"{prefix} headline", assets.headlines, HEADLINE_MAX_CHARS)
        warnings += _count_hint(f"{prefix} descriptions", assets.descriptions, DESCRIPTION_COUNT)
        warnings += _length_hints(f"{prefix} description", assets.descriptions, DESCRIPTION_MAX_CHARS)
        warnings += _count_hint(f"{prefix} callouts", assets.callouts, CALLOUT_COUNT)
        warnings += _count_hint(f"{prefix} sitelinks", assets.sitelinks, SITELINK_COUNT)
        for match_type in KEYWORD_MATCH_TYPES:
            keywords = getattr(creative.keywords, match_type)
            if not KEYWORDS_MIN <= len(keywords) <= KEYWORDS_MAX:
                warnings.append(
                    f"{prefix} {match_type} keywords: expected {KEYWORDS_MIN}-{KEYWORDS_MAX}, got {len(keywords)}"
                )
    return warnings

# ── Funnel Prompt Contract ──────────────────────────────────────────
# Input:  primary_link (string)        - CTA target for MOFU/BOFU, TOFU fallback
#         secondary_link (string)      - TOFU CTA target when source = secondary
#         product_description (string) - source of truth, embedded verbatim
#         language (Language)          - output language for every asset
#         product_image (ImageSource)  - inline data, external URL or none
# Output: JSON object {"pages": {...}, "adCreative": {...}} per RESPONSE_SCHEMA
# Rules:  No prose outside JSON. No markdown.
#         The JSON structure is NEVER changed by any input.

from enum import Enum
from typing import Dict, Tuple

from pagegen.models import (
    FUNNEL_STAGES,
    FunnelStage,
    GenerationRequest,
    ImageSource,
    ImageUrl,
    InlineImage,
    TopOfFunnelSource,
)

HEADLINE_COUNT = 15
HEADLINE_MAX_CHARS = 30
DESCRIPTION_COUNT = 4
DESCRIPTION_MAX_CHARS = 90
CALLOUT_COUNT = 4
SITELINK_COUNT = 4
KEYWORDS_MIN = 5
KEYWORDS_MAX = 10
KEYWORD_MATCH_TYPES = ("broad", "phrase", "exact")

SCHEMA_NAME = "funnel_generation"


def _string_list(min_items: int, max_items: int, max_length: int | None = None) -> dict:
    items: dict = {"type": "string"}
    if max_length is not None:
        items["maxLength"] = max_length
    return {"type": "array", "items": items, "minItems": min_items, "maxItems": max_items}


KEYWORD_SET_SCHEMA = {
    "type": "object",
    "properties": {
        match_type: _string_list(KEYWORDS_MIN, KEYWORDS_MAX) for match_type in KEYWORD_MATCH_TYPES
    },
    "required": list(KEYWORD_MATCH_TYPES),
}

SITELINK_SCHEMA = {
    "type": "object",
    "properties": {
        "title": {"type": "string"},
        "description1": {"type": "string"},
        "description2": {"type": "string"},
    },
    "required": ["title", "description1", "description2"],
}

AD_ASSETS_SCHEMA = {
    "type": "object",
    "properties": {
        "headlines": _string_list(HEADLINE_COUNT, HEADLINE_COUNT, HEADLINE_MAX_CHARS),
        "descriptions": _string_list(DESCRIPTION_COUNT, DESCRIPTION_COUNT, DESCRIPTION_MAX_CHARS),
        "callouts": _string_list(CALLOUT_COUNT, CALLOUT_COUNT),
        "sitelinks": {
            "type": "array",
            "items": SITELINK_SCHEMA,
            "minItems": SITELINK_COUNT,
            "maxItems": SITELINK_COUNT,
        },
    },
    "required": ["headlines", "descriptions", "callouts", "sitelinks"],
}

FUNNEL_STAGE_CREATIVE_SCHEMA = {
    "type": "object",
    "properties": {
        "keywords": KEYWORD_SET_SCHEMA,
        "adAssets": AD_ASSETS_SCHEMA,
    },
    "required": ["keywords", "adAssets"],
}

RESPONSE_SCHEMA = {
    "type": "object",
    "properties": {
        "pages": {
            "type": "object",
            "properties": {
                stage.value: {
                    "type": "string",
                    "description": f"Complete HTML for the {stage.value.upper()} page.",
                }
                for stage in FUNNEL_STAGES
            },
            "required": [stage.value for stage in FUNNEL_STAGES],
        },
        "adCreative": {
            "type": "object",
            "properties": {stage.value: FUNNEL_STAGE_CREATIVE_SCHEMA for stage in FUNNEL_STAGES},
            "required": [stage.value for stage in FUNNEL_STAGES],
        },
    },
    "required": ["pages", "adCreative"],
}

SYSTEM_PROMPT = (
    "You are an expert direct-response marketer, front-end developer and search-ads specialist. "
    "You answer with a single valid JSON object that follows the provided schema. "
    "No prose, no markdown, no explanation before or after the JSON."
)


class ImageBranch(str, Enum):
    INLINE = "inline"
    URL = "url"
    STOCK = "stock"


def resolve_cta_links(request: GenerationRequest) -> Dict[FunnelStage, str]:
    """Map each funnel stage to the link its calls-to-action point at.

    MOFU and BOFU always use the primary link. TOFU switches to the secondary
    link only when that source is selected and a secondary link was given.
    """
    tofu_link = request.primary_link
    if request.top_of_funnel_source == TopOfFunnelSource.SECONDARY and request.secondary_link:
        tofu_link = request.secondary_link
    return {
        FunnelStage.TOFU: tofu_link,
        FunnelStage.MOFU: request.primary_link,
        FunnelStage.BOFU: request.primary_link,
    }


def select_image_directive(image: ImageSource) -> Tuple[ImageBranch, str]:
    """Return (branch, instruction text) for the MOFU/BOFU product image."""
    header = "**PRODUCT IMAGE (for the MOFU and BOFU pages):**\n"
    placement = (
        "- **Placement:** Show the image prominently on both the MOFU and BOFU pages, "
        "next to the main headline or the primary call-to-action.\n"
    )
    if isinstance(image, InlineImage):
        return ImageBranch.INLINE, (
            header
            + "The user uploaded a product image. You MUST use this exact image on the MOFU and BOFU pages.\n"
            + f'- **Image tag:** `<img src="{image.data_url}" alt="[Product Name]">`. '
            + 'Replace "[Product Name]" with the product name you extracted.\n'
            + placement
        )
    if isinstance(image, ImageUrl):
        return ImageBranch.URL, (
            header
            + "The user supplied a product image URL. You MUST use this exact image on the MOFU and BOFU pages.\n"
            + f'- **Image tag:** `<img src="{image.url}" alt="[Product Name]">`. '
            + 'Replace "[Product Name]" with the product name you extracted.\n'
            + placement
        )
    return ImageBranch.STOCK, (
        header
        + "No product image was supplied. For the MOFU and BOFU pages pick a high-quality stock image "
        + "that represents the product itself. If the product information contains image URLs, use them; "
        + "otherwise use `https://source.unsplash.com/800x600/?<product-keywords>` with keywords "
        + "that describe the product.\n"
    )


def build_generation_prompt(request: GenerationRequest) -> str:
    """Assemble the user instruction for one funnel generation."""
    links = resolve_cta_links(request)
    _, image_instruction = select_image_directive(request.product_image)
    language = request.language.native_name

    return f"""**ROLE & OBJECTIVE:** Generate three distinct landing pages (TOFU, MOFU, BOFU) AND a complete, strategic set of Google Ads assets for each funnel stage, all written in {language}. The final output must be a single, valid JSON object.

**CONTEXT & ANALYSIS (Step 1):**
Analyze the "Product Information" below. From it you MUST extract:
1. **Product Name:** the official name of the product.
2. **Target Audience:** who the product is for.
3. **Core Problem:** the specific problem the product solves.
4. **Key Keywords (5-7):** the most important phrases describing benefits and features.

**PRODUCT INFORMATION (Source of Truth):**
---
{request.product_description}
---

{image_instruction}
**PAGE GENERATION (Step 2):**
Using ONLY the insights from your analysis, write the HTML for the three pages. The value of each page key ("tofu", "mofu", "bofu") must be one string containing a complete, responsive, mobile-first HTML document styled with inline Tailwind CSS classes.

**Main Link (MOFU & BOFU CTAs):** {links[FunnelStage.MOFU]}
**TOFU Page CTA Link:** {links[FunnelStage.TOFU]}
**CTA Behavior:** every call-to-action link (`<a>` tag) MUST open in a new tab (`target="_blank"` and `rel="noopener noreferrer"`).

**PAGE REQUIREMENTS:**
- **General:**
  - Each page is a single HTML file using Tailwind CSS classes directly. No <style> tags.
  - Modern, clean and **fully responsive (mobile-first)** design.
  - **Footer:** every page MUST have a footer with "Terms of Use", "Disclaimer" and "Privacy Policy" links and a short earnings/results disclaimer paragraph.
- **1. TOFU (Problem Awareness):**
  - **Goal:** educate the reader about the problem.
  - **Image:** MUST include a 1024x1024 AI-generated image of the **Core Problem** using `<img src="https://image.pollinations.ai/prompt/{{URL_ENCODED_PROMPT}}?width=1024&height=1024" alt="...">`.
  - **Content:** an engaging blog post about the core problem.
  - **CTA:** a soft CTA using the **TOFU Page CTA Link**.
- **2. MOFU (Solution Comparison):**
  - **Goal:** position the product as the best solution.
  - **Image:** the product image described above.
  - **Content:** a professional review page (What is it?, How it works, Benefits, Testimonials).
  - **CTA:** a clear button using the **Main Link**.
- **3. BOFU (Direct Conversion):**
  - **Goal:** drive an immediate sale.
  - **Image:** the product image described above.
  - **Content:** a high-urgency sales page (scarcity, social proof).
  - **CTA:** a compelling button using the **Main Link**.

**AD CREATIVE GENERATION (Step 3):**
For EACH funnel stage (TOFU, MOFU, BOFU) generate Google Ads assets that are **highly congruent with that stage's landing page**.
1. **Keywords:**
   - {KEYWORDS_MIN}-{KEYWORDS_MAX} keywords for EACH match type (broad, phrase, exact).
   - **TOFU:** problem-focused (e.g. "how to solve [problem]").
   - **MOFU:** solution/category-focused (e.g. "[product category] reviews").
   - **BOFU:** brand/purchase-intent focused (e.g. "buy [product name]").
2. **Ad Assets:**
   - **Headlines:** EXACTLY {HEADLINE_COUNT} unique headlines, each **{HEADLINE_MAX_CHARS} characters or less**.
   - **Descriptions:** EXACTLY {DESCRIPTION_COUNT} unique descriptions, each **{DESCRIPTION_MAX_CHARS} characters or less**.
   - **Callouts:** EXACTLY {CALLOUT_COUNT} unique, concise callouts.
   - **Sitelinks:** EXACTLY {SITELINK_COUNT} unique sitelinks, each with a title, description1 and description2.

**JSON OUTPUT FORMAT:**
Respond with a single valid JSON object with the keys "pages" ("tofu", "mofu", "bofu" HTML strings) and "adCreative" ("tofu", "mofu", "bofu", each with "keywords" and "adAssets"), following the schema exactly. Do not add any text or markdown before or after the JSON object.
"""

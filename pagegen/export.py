import base64
import logging
import re
from typing import List
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from pagegen.errors import ImageTooLargeError, UnsupportedImageError
from pagegen.models import AdPreview, DisplayMode, FunnelStage, FunnelStageCreative, InlineImage, Page

logger = logging.getLogger(__name__)

MAX_IMAGE_BYTES = 4 * 1024 * 1024
DEFAULT_DOMAIN = "your-domain.com"
PLACEHOLDER_HEADLINE = "Your Main Headline Appears Here"
PLACEHOLDER_DESCRIPTION = (
    "Your ad description will appear here, giving more detail about your product "
    "or service to attract customers."
)

# Rendered previews run in an opaque origin: scripts and new-tab CTAs only.
PREVIEW_CSP = "sandbox allow-scripts allow-popups allow-popups-to-escape-sandbox"

CTA_HIGHLIGHT_STYLE = """<style>
  @keyframes pulse-cta {
    0% { box-shadow: 0 0 0 0 rgba(6, 182, 212, 0.7); }
    70% { box-shadow: 0 0 0 10px rgba(6, 182, 212, 0); }
    100% { box-shadow: 0 0 0 0 rgba(6, 182, 212, 0); }
  }
  a[href]:not([href="#"]), button, input[type='submit'], [role='button'] {
    outline: 2px solid #06b6d4 !important;
    box-shadow: 0 0 8px #06b6d4;
    animation: pulse-cta 2s infinite;
    transition: all 0.3s ease-in-out;
  }
</style>
"""


def download_filename(stage: FunnelStage) -> str:
    """e.g. FunnelStage.TOFU -> 'top_of_funnel_tofu.html'"""
    name = re.sub(r"\s+", "_", stage.label.strip().lower())
    name = re.sub(r"[^a-z0-9_-]", "", name)
    return f"{name}.html"


def format_html(html: str) -> str:
    """Pretty-print HTML for the source editor; returns the input unchanged if parsing fails."""
    if not html.strip():
        return html
    try:
        return BeautifulSoup(html, "html.parser").prettify()
    except Exception as e:
        logger.warning("Error formatting HTML, showing raw source: %s", e)
        return html


def copy_content(page: Page, display_mode: DisplayMode) -> str:
    if display_mode == DisplayMode.SOURCE:
        return format_html(page.html_content)
    return page.html_content


def with_cta_highlight(html: str) -> str:
    return CTA_HIGHLIGHT_STYLE + html


def image_upload_to_source(data: bytes, content_type: str) -> InlineImage:
    """Convert an uploaded image into inline base64 image data."""
    if not content_type or not content_type.startswith("image/"):
        raise UnsupportedImageError("Please select an image file (PNG, JPG or WEBP).")
    if len(data) > MAX_IMAGE_BYTES:
        raise ImageTooLargeError("The file is too large. Please select an image smaller than 4MB.")
    return InlineImage(data=base64.b64encode(data).decode("ascii"), mime_type=content_type)


def domain_from_url(url: str) -> str:
    host = urlparse(url.strip()).hostname if url else None
    if not host:
        return DEFAULT_DOMAIN
    return re.sub(r"^www\.", "", host)


def build_ad_preview(creative: FunnelStageCreative, domain: str) -> AdPreview:
    assets = creative.ad_assets
    return AdPreview(
        domain=domain,
        headline=" | ".join(assets.headlines[:3]) or PLACEHOLDER_HEADLINE,
        description=" ".join(assets.descriptions[:2]) or PLACEHOLDER_DESCRIPTION,
        sitelink_titles=[link.title for link in assets.sitelinks[:4]],
    )


def join_assets(items: List[str]) -> str:
    return "\n".join(items)

from enum import Enum
from typing import Annotated, Dict, List, Literal, Optional, Union
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base for models exchanged with the AI service, the browser and storage (camelCase on the wire)."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Language(str, Enum):
    ENGLISH = "English"
    PORTUGUESE = "Portuguese"
    SPANISH = "Spanish"
    GERMAN = "German"
    FRENCH = "French"

    @property
    def native_name(self) -> str:
        return _NATIVE_LANGUAGE_NAMES[self]


_NATIVE_LANGUAGE_NAMES = {
    Language.ENGLISH: "English",
    Language.PORTUGUESE: "Português",
    Language.SPANISH: "Español",
    Language.GERMAN: "Deutsch",
    Language.FRENCH: "Français",
}


class FunnelStage(str, Enum):
    TOFU = "tofu"
    MOFU = "mofu"
    BOFU = "bofu"

    @property
    def label(self) -> str:
        return _STAGE_LABELS[self]

    @property
    def short_label(self) -> str:
        return self.label.split("(")[0].strip()


_STAGE_LABELS = {
    FunnelStage.TOFU: "Top of Funnel (TOFU)",
    FunnelStage.MOFU: "Middle of Funnel (MOFU)",
    FunnelStage.BOFU: "Bottom of Funnel (BOFU)",
}

# Iteration order everywhere (tabs, schema keys, default selection)
FUNNEL_STAGES: List[FunnelStage] = [FunnelStage.TOFU, FunnelStage.MOFU, FunnelStage.BOFU]


class TopOfFunnelSource(str, Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"


class OutputView(str, Enum):
    PAGES = "pages"
    AD_CREATIVE = "ad_creative"


class DisplayMode(str, Enum):
    PREVIEW = "preview"
    SOURCE = "source"


# ── Product image (one-of) ─────────────────────────────────────────

class InlineImage(WireModel):
    kind: Literal["inline"] = "inline"
    data: str  # base64 payload, no data: prefix
    mime_type: str = "image/jpeg"

    @property
    def data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.data}"


class ImageUrl(WireModel):
    kind: Literal["url"] = "url"
    url: str


class NoImage(WireModel):
    kind: Literal["none"] = "none"


ImageSource = Annotated[Union[InlineImage, ImageUrl, NoImage], Field(discriminator="kind")]


class GenerationRequest(WireModel):
    primary_link: str
    secondary_link: Optional[str] = None
    product_description: str
    language: Language = Language.PORTUGUESE
    product_image: ImageSource = Field(default_factory=NoImage)
    top_of_funnel_source: TopOfFunnelSource = TopOfFunnelSource.PRIMARY


# ── Generated content ──────────────────────────────────────────────

class Page(WireModel):
    stage: FunnelStage
    html_content: str


Pages = Dict[FunnelStage, Page]


class KeywordSet(WireModel):
    broad: List[str]
    phrase: List[str]
    exact: List[str]


class Sitelink(WireModel):
    title: str
    description1: str
    description2: str


class AdAssets(WireModel):
    headlines: List[str]
    descriptions: List[str]
    callouts: List[str]
    sitelinks: List[Sitelink]


class FunnelStageCreative(WireModel):
    keywords: KeywordSet
    ad_assets: AdAssets


class AdCreative(WireModel):
    tofu: FunnelStageCreative
    mofu: FunnelStageCreative
    bofu: FunnelStageCreative

    def for_stage(self, stage: FunnelStage) -> FunnelStageCreative:
        return getattr(self, stage.value)


class GenerationResult(WireModel):
    pages: Pages
    ad_creative: AdCreative
    warnings: List[str] = Field(default_factory=list)


class HistoryEntry(WireModel):
    id: str
    display_name: str
    created_at: datetime
    pages: Pages
    ad_creative: AdCreative


class AdPreview(WireModel):
    domain: str
    headline: str
    description: str
    sitelink_titles: List[str] = Field(default_factory=list)


# ── API request bodies ─────────────────────────────────────────────

class FormUpdate(WireModel):
    primary_link: Optional[str] = None
    secondary_link: Optional[str] = None
    product_description: Optional[str] = None
    language: Optional[Language] = None


class TopOfFunnelSourceUpdate(WireModel):
    source: TopOfFunnelSource


class ImageUrlUpdate(WireModel):
    url: str


class PageEdit(WireModel):
    html_content: str


class ViewUpdate(WireModel):
    output_view: Optional[OutputView] = None
    page_stage: Optional[FunnelStage] = None
    display_mode: Optional[DisplayMode] = None
    ad_stage: Optional[FunnelStage] = None
    highlight_ctas: Optional[bool] = None


class EngineSelection(WireModel):
    engine: str

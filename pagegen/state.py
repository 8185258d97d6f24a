"""Session state for the generator UI.

The state is an immutable value. Every transition below takes the current
``SessionState`` and returns a new one; nothing here touches storage or the AI
service. The HTTP layer holds the current value and swaps it after each call.
"""

from typing import List, Optional
from urllib.parse import urlparse

from pydantic import ConfigDict, Field

from pagegen.errors import FormValidationError
from pagegen.models import (
    FUNNEL_STAGES,
    AdCreative,
    DisplayMode,
    FunnelStage,
    GenerationRequest,
    GenerationResult,
    HistoryEntry,
    ImageSource,
    ImageUrl,
    InlineImage,
    Language,
    NoImage,
    OutputView,
    Pages,
    TopOfFunnelSource,
    WireModel,
)


GENERIC_FAILURE_MESSAGE = "Failed to generate the pages. Please try again."


class FrozenModel(WireModel):
    model_config = ConfigDict(frozen=True)


class FormInput(FrozenModel):
    primary_link: str = ""
    secondary_link: str = ""
    product_description: str = ""
    language: Language = Language.PORTUGUESE
    image: ImageSource = Field(default_factory=NoImage)
    top_of_funnel_source: TopOfFunnelSource = TopOfFunnelSource.PRIMARY


class ViewSelection(FrozenModel):
    output_view: OutputView = OutputView.PAGES
    page_stage: FunnelStage = FunnelStage.TOFU
    display_mode: DisplayMode = DisplayMode.PREVIEW
    ad_stage: FunnelStage = FunnelStage.TOFU
    highlight_ctas: bool = False


class SessionState(FrozenModel):
    form: FormInput = Field(default_factory=FormInput)
    pages: Optional[Pages] = None
    ad_creative: Optional[AdCreative] = None
    active_history_id: Optional[str] = None
    is_loading: bool = False
    error: Optional[str] = None
    warnings: List[str] = Field(default_factory=list)
    view: ViewSelection = Field(default_factory=ViewSelection)

    @property
    def has_result(self) -> bool:
        return self.pages is not None and self.ad_creative is not None


def _with_form(state: SessionState, **changes) -> SessionState:
    return state.model_copy(update={"form": state.form.model_copy(update=changes)})


# ── Form ───────────────────────────────────────────────────────────

def update_form(state: SessionState, **fields) -> SessionState:
    """Set plain text/enum form fields; ``None`` values are ignored."""
    allowed = {"primary_link", "secondary_link", "product_description", "language"}
    unknown = set(fields) - allowed
    if unknown:
        raise ValueError(f"Unknown form field(s): {', '.join(sorted(unknown))}")
    changes = {k: v for k, v in fields.items() if v is not None}
    return _with_form(state, **changes) if changes else state


def set_top_of_funnel_source(state: SessionState, source: TopOfFunnelSource) -> SessionState:
    if source == TopOfFunnelSource.PRIMARY:
        return _with_form(state, top_of_funnel_source=source, secondary_link="")
    return _with_form(state, top_of_funnel_source=source)


def set_uploaded_image(state: SessionState, image: InlineImage) -> SessionState:
    return _with_form(state, image=image)


def set_image_url(state: SessionState, url: str) -> SessionState:
    url = url.strip()
    return _with_form(state, image=ImageUrl(url=url) if url else NoImage())


def remove_image(state: SessionState) -> SessionState:
    return _with_form(state, image=NoImage())


def _is_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def validate_form(form: FormInput) -> GenerationRequest:
    """Turn the form into a GenerationRequest or raise FormValidationError."""
    primary_link = form.primary_link.strip()
    description = form.product_description.strip()
    secondary_link = form.secondary_link.strip()

    if not primary_link or not description:
        raise FormValidationError("The main link and the product information are required.")
    if not _is_url(primary_link):
        raise FormValidationError("The main link must be a valid http(s) URL.")
    if form.top_of_funnel_source == TopOfFunnelSource.SECONDARY:
        if not secondary_link:
            raise FormValidationError("The secondary link is required when it is selected for the TOFU page.")
        if not _is_url(secondary_link):
            raise FormValidationError("The secondary link must be a valid http(s) URL.")

    return GenerationRequest(
        primary_link=primary_link,
        secondary_link=secondary_link or None,
        product_description=form.product_description,
        language=form.language,
        product_image=form.image,
        top_of_funnel_source=form.top_of_funnel_source,
    )


# ── Generation lifecycle ───────────────────────────────────────────

def first_available_stage(pages: Optional[Pages]) -> FunnelStage:
    for stage in FUNNEL_STAGES:
        if pages and stage in pages:
            return stage
    return FUNNEL_STAGES[0]


def start_generation(state: SessionState) -> SessionState:
    return state.model_copy(update={
        "pages": None,
        "ad_creative": None,
        "active_history_id": None,
        "error": None,
        "warnings": [],
        "is_loading": True,
    })


def generation_succeeded(state: SessionState, result: GenerationResult, history_id: Optional[str]) -> SessionState:
    view = state.view.model_copy(update={
        "output_view": OutputView.PAGES,
        "page_stage": first_available_stage(result.pages),
        "ad_stage": FUNNEL_STAGES[0],
    })
    return state.model_copy(update={
        "pages": dict(result.pages),
        "ad_creative": result.ad_creative,
        "active_history_id": history_id,
        "warnings": list(result.warnings),
        "error": None,
        "is_loading": False,
        "view": view,
    })


def generation_failed(state: SessionState, message: str = GENERIC_FAILURE_MESSAGE) -> SessionState:
    return state.model_copy(update={
        "pages": None,
        "ad_creative": None,
        "error": message,
        "is_loading": False,
    })


# ── Result editing & history ───────────────────────────────────────

def edit_page(state: SessionState, stage: FunnelStage, html_content: str) -> SessionState:
    if not state.pages or stage not in state.pages:
        return state
    pages = dict(state.pages)
    pages[stage] = pages[stage].model_copy(update={"html_content": html_content})
    return state.model_copy(update={"pages": pages})


def load_history_entry(state: SessionState, entry: HistoryEntry) -> SessionState:
    pages = {stage: page.model_copy() for stage, page in entry.pages.items()}
    view = state.view.model_copy(update={
        "output_view": OutputView.PAGES,
        "page_stage": first_available_stage(pages),
    })
    return state.model_copy(update={
        "pages": pages,
        "ad_creative": entry.ad_creative.model_copy(deep=True),
        "active_history_id": entry.id,
        "error": None,
        "warnings": [],
        "view": view,
    })


def forget_history_entry(state: SessionState, entry_id: str) -> SessionState:
    """Drop the active-entry link when that entry is deleted; the result stays on screen."""
    if state.active_history_id != entry_id:
        return state
    return state.model_copy(update={"active_history_id": None})


def select_view(
    state: SessionState, *,
    output_view: Optional[OutputView] = None,
    page_stage: Optional[FunnelStage] = None,
    display_mode: Optional[DisplayMode] = None,
    ad_stage: Optional[FunnelStage] = None,
    highlight_ctas: Optional[bool] = None,
) -> SessionState:
    changes = {
        "output_view": output_view,
        "page_stage": page_stage,
        "display_mode": display_mode,
        "ad_stage": ad_stage,
        "highlight_ctas": highlight_ctas,
    }
    changes = {k: v for k, v in changes.items() if v is not None}
    if not changes:
        return state
    return state.model_copy(update={"view": state.view.model_copy(update=changes)})

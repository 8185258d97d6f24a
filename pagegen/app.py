import sys
import os
import json
import logging
from typing import Optional
from fastapi import FastAPI, HTTPException, UploadFile, File
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, Response
from sse_starlette.sse import EventSourceResponse
from dotenv import load_dotenv


def get_app_data_dir() -> str:
    """Return a user-writable data directory for PageGen (created if absent)."""
    if sys.platform == "win32":
        base = os.environ.get("APPDATA") or os.path.expanduser("~")
    elif sys.platform == "darwin":
        base = os.path.expanduser("~/Library/Application Support")
    else:
        base = os.environ.get("XDG_DATA_HOME") or os.path.expanduser("~/.local/share")
    app_dir = os.path.join(base, "PageGen")
    os.makedirs(app_dir, exist_ok=True)
    return app_dir


# Load .env from app-data dir first, then fall back to CWD (dev)
load_dotenv(os.path.join(get_app_data_dir(), ".env"))
load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("pagegen")

from pagegen.models import (
    FUNNEL_STAGES,
    DisplayMode,
    EngineSelection,
    FormUpdate,
    FunnelStage,
    GenerationRequest,
    GenerationResult,
    ImageUrlUpdate,
    Page,
    PageEdit,
    TopOfFunnelSourceUpdate,
    ViewUpdate,
)
from pagegen.errors import FormValidationError, GenerationError, ImageTooLargeError, UnsupportedImageError
from pagegen.generation import GenerationClient
from pagegen.state import (
    GENERIC_FAILURE_MESSAGE,
    SessionState,
    edit_page,
    forget_history_entry,
    generation_failed,
    generation_succeeded,
    load_history_entry,
    remove_image,
    select_view,
    set_image_url,
    set_top_of_funnel_source,
    set_uploaded_image,
    start_generation,
    update_form,
    validate_form,
)
from pagegen.storage import DatabaseManager, HistoryStore, SQLiteKeyValueStore, make_display_name, new_history_entry
from pagegen.export import (
    PREVIEW_CSP,
    build_ad_preview,
    copy_content,
    domain_from_url,
    download_filename,
    format_html,
    image_upload_to_source,
    join_assets,
    with_cta_highlight,
)
from pagegen.ai.engine_manager import AIEngineManager

GENERATION_TEMPERATURE = float(os.getenv("GENERATION_TEMPERATURE", "0.7"))
GENERATION_MAX_TOKENS = int(os.getenv("GENERATION_MAX_TOKENS", "32768"))


app = FastAPI(title="PageGen")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

db = DatabaseManager(os.getenv("PAGEGEN_DB_PATH") or os.path.join(get_app_data_dir(), "pagegen.db"))
db.initialize_schema()

history_store = HistoryStore(SQLiteKeyValueStore(db))

# ── AI Engine Manager (runtime-switchable) ───────────────────────────
engine_manager = AIEngineManager.from_env()
logger.info("AI ENGINE SELECTED: %s", engine_manager.active_name)

# The browser session: one explicit state value, replaced after every transition.
session = SessionState()


def _session_payload() -> dict:
    return session.model_dump(mode="json", by_alias=True)


def _generation_client() -> GenerationClient:
    return GenerationClient(
        engine_manager.get_active(),
        engine_manager.active_name,
        temperature=GENERATION_TEMPERATURE,
        max_tokens=GENERATION_MAX_TOKENS,
    )


def _validated_request() -> GenerationRequest:
    """Build the request from the form, or raise HTTPException (409 busy, 400 invalid)."""
    global session
    if session.is_loading:
        raise HTTPException(status_code=409, detail="A generation is already in progress")
    try:
        return validate_form(session.form)
    except FormValidationError as e:
        session = session.model_copy(update={"error": str(e)})
        raise HTTPException(status_code=400, detail=str(e))


def _begin_generation() -> GenerationRequest:
    global session
    request = _validated_request()
    session = start_generation(session)
    return request


def _finish_generation(request: GenerationRequest, result: GenerationResult) -> None:
    global session
    entry = new_history_entry(request, result, history_store.ids())
    history_store.append(entry)
    session = generation_succeeded(session, result, entry.id)
    logger.info("[GENERATE] Stored history entry %s (%d warning(s))", entry.id, len(result.warnings))


def _fail_generation(error: Exception) -> None:
    global session
    if isinstance(error, GenerationError):
        logger.error("[GENERATE] %s: %s", error.kind, error.detail)
    else:
        logger.exception("[GENERATE] Unexpected failure", exc_info=error)
    session = generation_failed(session, GENERIC_FAILURE_MESSAGE)


def _require_page(stage: FunnelStage) -> Page:
    if not session.pages or stage not in session.pages:
        raise HTTPException(status_code=404, detail=f"No generated page for {stage.value}")
    return session.pages[stage]


# ── Session ──────────────────────────────────────────────────────────

@app.get("/session")
async def get_session():
    return _session_payload()


@app.put("/session/form")
async def update_session_form(req: FormUpdate):
    global session
    session = update_form(session, **req.model_dump(exclude_none=True))
    return _session_payload()


@app.put("/session/tofu-source")
async def update_tofu_source(req: TopOfFunnelSourceUpdate):
    global session
    session = set_top_of_funnel_source(session, req.source)
    return _session_payload()


@app.post("/session/image")
async def upload_product_image(file: UploadFile = File(...)):
    """Attach an uploaded product image (max 4MB); replaces any image URL."""
    global session
    data = await file.read()
    try:
        image = image_upload_to_source(data, file.content_type or "")
    except ImageTooLargeError as e:
        raise HTTPException(status_code=413, detail=str(e))
    except UnsupportedImageError as e:
        raise HTTPException(status_code=415, detail=str(e))
    session = set_uploaded_image(session, image)
    return _session_payload()


@app.put("/session/image-url")
async def update_product_image_url(req: ImageUrlUpdate):
    global session
    session = set_image_url(session, req.url)
    return _session_payload()


@app.delete("/session/image")
async def delete_product_image():
    global session
    session = remove_image(session)
    return _session_payload()


@app.put("/session/view")
async def update_view(req: ViewUpdate):
    global session
    session = select_view(session, **req.model_dump(exclude_none=True))
    return _session_payload()


@app.put("/session/pages/{stage}")
async def edit_session_page(stage: FunnelStage, req: PageEdit):
    """Replace the in-memory HTML of one stage. History is untouched until saved."""
    global session
    _require_page(stage)
    session = edit_page(session, stage, req.html_content)
    return _session_payload()


# ── Generation ───────────────────────────────────────────────────────

@app.post("/generate")
async def generate():
    request = _begin_generation()
    try:
        result = await _generation_client().generate(request)
    except GenerationError as e:
        _fail_generation(e)
        raise HTTPException(status_code=502, detail=GENERIC_FAILURE_MESSAGE)
    except Exception as e:
        _fail_generation(e)
        raise
    _finish_generation(request, result)
    return _session_payload()


@app.post("/generate/stream")
async def generate_stream():
    """SSE variant of /generate.

    Events (each a JSON `data:` payload, then a final "[DONE]"):
      - {"type": "loading"}
      - {"type": "progress", "chars": 1234}
      - {"type": "result", "session": {...}}
      - {"type": "error", "message": "..."}
    """
    request = _validated_request()
    client = _generation_client()

    async def event_generator():
        global session
        # Loading starts with the first pulled event; a body that is never iterated leaves the session idle
        if session.is_loading:
            yield {"data": json.dumps({"type": "error", "message": "A generation is already in progress"})}
            yield {"data": "[DONE]"}
            return
        session = start_generation(session)
        try:
            yield {"data": json.dumps({"type": "loading"})}
            async for kind, payload in client.run(request):
                if kind == "progress":
                    yield {"data": json.dumps({"type": "progress", "chars": payload})}
                else:
                    _finish_generation(request, payload)
                    yield {"data": json.dumps({"type": "result", "session": _session_payload()})}
        except GenerationError as e:
            _fail_generation(e)
            yield {"data": json.dumps({"type": "error", "message": GENERIC_FAILURE_MESSAGE})}
        except Exception as e:
            _fail_generation(e)
            raise
        finally:
            if session.is_loading:
                logger.warning("[GENERATE] Stream closed before the generation finished")
                session = generation_failed(session, GENERIC_FAILURE_MESSAGE)
        yield {"data": "[DONE]"}

    return EventSourceResponse(event_generator())


# ── Pages ────────────────────────────────────────────────────────────

@app.get("/pages/{stage}/preview", response_class=HTMLResponse)
async def preview_page(stage: FunnelStage, highlight_ctas: Optional[bool] = None):
    page = _require_page(stage)
    highlight = session.view.highlight_ctas if highlight_ctas is None else highlight_ctas
    html = with_cta_highlight(page.html_content) if highlight else page.html_content
    return HTMLResponse(html, headers={"Content-Security-Policy": PREVIEW_CSP})


@app.get("/pages/{stage}/source")
async def page_source(stage: FunnelStage):
    page = _require_page(stage)
    return {"stage": stage.value, "label": stage.label, "html": format_html(page.html_content)}


@app.get("/pages/{stage}/download")
async def download_page(stage: FunnelStage):
    page = _require_page(stage)
    filename = download_filename(stage)
    return Response(
        content=page.html_content,
        media_type="text/html",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.get("/pages/{stage}/copy")
async def copy_page(stage: FunnelStage, mode: Optional[DisplayMode] = None):
    """Clipboard text: raw HTML in preview mode, formatted HTML in source mode."""
    page = _require_page(stage)
    display_mode = mode or session.view.display_mode
    return {"stage": stage.value, "mode": display_mode.value, "content": copy_content(page, display_mode)}


# ── Ad creative ──────────────────────────────────────────────────────

@app.get("/ad-creative/{stage}")
async def get_stage_creative(stage: FunnelStage):
    if session.ad_creative is None:
        raise HTTPException(status_code=404, detail="No ad creative has been generated")
    creative = session.ad_creative.for_stage(stage)
    assets = creative.ad_assets
    preview = build_ad_preview(creative, domain_from_url(session.form.primary_link))
    return {
        "stage": stage.value,
        "label": stage.label,
        "creative": creative.model_dump(by_alias=True),
        "preview": preview.model_dump(by_alias=True),
        "copy": {
            "headlines": join_assets(assets.headlines),
            "descriptions": join_assets(assets.descriptions),
            "callouts": join_assets(assets.callouts),
            "broad": join_assets(creative.keywords.broad),
            "phrase": join_assets(creative.keywords.phrase),
            "exact": join_assets(creative.keywords.exact),
        },
    }


@app.get("/stages")
async def list_stages():
    return [{"stage": s.value, "label": s.label, "shortLabel": s.short_label} for s in FUNNEL_STAGES]


# ── History ──────────────────────────────────────────────────────────

@app.get("/history")
async def list_history():
    return [
        {
            "id": entry.id,
            "displayName": entry.display_name,
            "createdAt": entry.created_at.isoformat(),
            "active": entry.id == session.active_history_id,
        }
        for entry in history_store.entries
    ]


@app.get("/history/{entry_id}")
async def get_history_entry(entry_id: str):
    entry = history_store.get(entry_id)
    if not entry:
        raise HTTPException(status_code=404, detail="History entry not found")
    return entry.model_dump(mode="json", by_alias=True)


@app.post("/history/{entry_id}/load")
async def load_history(entry_id: str):
    global session
    entry = history_store.get(entry_id)
    if not entry:
        raise HTTPException(status_code=404, detail="History entry not found")
    session = load_history_entry(session, entry)
    return _session_payload()


@app.put("/history/{entry_id}")
async def save_history(entry_id: str):
    """Overwrite the active entry with the session's (possibly edited) result."""
    if entry_id != session.active_history_id or not session.has_result:
        raise HTTPException(status_code=409, detail="Only the active history entry can be saved")
    entry = history_store.get(entry_id)
    if not entry:
        raise HTTPException(status_code=404, detail="History entry not found")
    description = session.form.product_description
    display_name = make_display_name(description) if description.strip() else entry.display_name
    updated = history_store.update(entry_id, session.pages, session.ad_creative, display_name)
    return updated.model_dump(mode="json", by_alias=True)


@app.delete("/history/{entry_id}")
async def delete_history(entry_id: str, confirm: bool = False):
    global session
    if not confirm:
        raise HTTPException(
            status_code=400,
            detail="Deleting a history entry cannot be undone; repeat with confirm=true",
        )
    if not history_store.remove(entry_id):
        raise HTTPException(status_code=404, detail="History entry not found")
    session = forget_history_entry(session, entry_id)
    return {"status": "ok"}


# ── AI Engine switching ──────────────────────────────────────────────

@app.get("/ai/engines")
async def list_engines():
    return engine_manager.list_engines()


@app.post("/ai/engine")
async def set_engine(req: EngineSelection):
    try:
        engine_manager.set_active(req.engine)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    logger.info("[ENGINE] Switched active engine to: %s", req.engine)
    return {"active": req.engine}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="127.0.0.1", port=int(os.getenv("PAGEGEN_PORT", "8000")), timeout_keep_alive=5)

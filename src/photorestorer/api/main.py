"""Photo Restorer — FastAPI Application.

This module is the single entry point for the web application.  It defines
the FastAPI ``app`` instance, all REST API routes, and the ``main()`` CLI
function that launches the uvicorn server.

Architecture
------------
The restorer is a local, single-user service:

- **One session per process** — a :class:`RestorationSession` created in the
  lifespan holds the images, prompt, status, history and saved prompts.
- **The prompt is one string** — every control endpoint edits that string
  and returns it together with the derived control values.
- **Restoration** runs two concurrent Gemini calls per image through
  :class:`RestorationClient`; the request returns once both settle.
- **Persistence** uses JSON files in ``config.data_dir`` — no database.
- **Previews** of uploaded images are served from memory at
  ``/api/previews/{token}`` until the image is removed.

Endpoints
---------
========  ===================================  ==============================
Method    Path                                 Purpose
========  ===================================  ==============================
GET       ``/api/config``                      Vocabularies and limits
GET       ``/api/prompt``                      Prompt and derived controls
PUT       ``/api/prompt``                      Manual prompt edit
POST      ``/api/prompt/update``               Structured add/remove
POST      ``/api/prompt/presets/toggle``       Toggle one preset
POST      ``/api/prompt/presets/toggle-all``   Toggle all presets
POST      ``/api/prompt/backdrop``             Set backdrop style
POST      ``/api/prompt/backdrop/color``       Set backdrop colour
POST      ``/api/prompt/lighting``             Set lighting level
GET       ``/api/images``                      List source/reference images
POST      ``/api/images/{collection}``         Upload images
POST      ``/api/images/{collection}/capture`` Capture from the camera
DELETE    ``/api/images/{collection}/{id}``    Remove an image
POST      ``/api/images/source/active``        Select the active source
GET       ``/api/previews/{token}``            Serve an image preview
POST      ``/api/restore``                     Restore the active image
POST      ``/api/restore/batch``               Restore every source image
GET       ``/api/status``                      Status, progress, results
POST      ``/api/results/{id}/reuse``          Reuse a result as source
GET       ``/api/history``                     Restoration history
DELETE    ``/api/history/{id}``                Delete a history entry
GET       ``/api/prompts/saved``               Saved prompts
POST      ``/api/prompts/saved``               Save a prompt
GET       ``/api/prompts/saved/export``        Download saved prompts
========  ===================================  ==============================

Usage
-----
CLI (installed entry point)::

    photorestorer

Direct invocation::

    python -m photorestorer.api.main
"""

from __future__ import annotations

import logging
import re
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, File, HTTPException, Request, Response, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from photorestorer import __version__
from photorestorer.api.models import (
    ActiveImageRequest,
    BackdropColorRequest,
    BackdropStyleRequest,
    CaptureRequest,
    ImageModel,
    ImagesResponse,
    LightingRequest,
    PresetToggleRequest,
    PromptResponse,
    PromptTextRequest,
    PromptUpdateRequest,
    ReuseRequest,
    SavePromptRequest,
    StatusResponse,
)
from photorestorer.core.camera import CameraAccessError, CameraCapture, OpenCVCameraDevice
from photorestorer.core.config import RestorerConfig, config
from photorestorer.core.history import RestorationResult
from photorestorer.core.kv_store import JsonFileStore
from photorestorer.core.media import ImageCollection
from photorestorer.core.prompt_state import (
    BACKDROP_STYLES,
    DEFAULT_BACKDROP_COLOR,
    LIGHTING_CLAUSES,
    NEUTRAL_LIGHTING_INDEX,
    PRESET_CLAUSES,
)
from photorestorer.core.restoration_client import RestorationClient, RestorationError
from photorestorer.core.session import RestorationSession
from photorestorer.core.validation import ValidationError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Collaborator factories.  Tests replace these to avoid network and hardware.
# ---------------------------------------------------------------------------


def create_genai_client(cfg: RestorerConfig) -> Any:
    """Create the google-genai client.

    Raises:
        MissingCredentialsError: If no API key is configured
    """
    from google import genai

    return genai.Client(api_key=cfg.require_api_key())


def create_camera_device(cfg: RestorerConfig) -> Any:
    """Create the camera device used by the capture endpoint."""
    return OpenCVCameraDevice(
        {
            "environment": cfg.camera_environment_index,
            "user": cfg.camera_user_index,
        }
    )


# ---------------------------------------------------------------------------
# Application lifecycle — session setup and teardown.
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application startup and shutdown lifecycle.

    On startup:
        Checks the API key (a missing key aborts startup), then creates the
        :class:`RestorationSession` and stores it on ``app.state``.

    On shutdown:
        Releases every image preview held by the session.

    Args:
        app: The FastAPI application instance.

    Yields:
        Control back to the application for the duration of its lifetime.
    """
    # --- Startup -----------------------------------------------------------
    config.require_api_key()
    client = RestorationClient(create_genai_client(config), config.model_id)
    app.state.session = RestorationSession(
        client,
        JsonFileStore(config.data_dir),
        max_source_images=config.max_source_images,
    )
    app.state.camera_device = create_camera_device(config)
    logger.info("Restoration session ready (model=%s, data=%s).", config.model_id, config.data_dir)

    yield  # Application runs here.

    # --- Shutdown ----------------------------------------------------------
    app.state.session.close()
    logger.info("Restoration session closed on shutdown.")


# ---------------------------------------------------------------------------
# FastAPI application instance.
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Photo Restorer",
    description="Prompt-driven photo restoration backed by Gemini image models.",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Error mapping.  Every user-visible failure is a plain ``detail`` string.
# ---------------------------------------------------------------------------


@app.exception_handler(ValidationError)
async def _validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(RestorationError)
async def _restoration_error_handler(request: Request, exc: RestorationError) -> JSONResponse:
    return JSONResponse(status_code=502, content={"detail": str(exc)})


@app.exception_handler(CameraAccessError)
async def _camera_error_handler(request: Request, exc: CameraAccessError) -> JSONResponse:
    return JSONResponse(status_code=503, content={"detail": str(exc)})


# ---------------------------------------------------------------------------
# Helpers.
# ---------------------------------------------------------------------------


def _session(request: Request) -> RestorationSession:
    return request.app.state.session


def _collection(session: RestorationSession, name: str) -> ImageCollection:
    if name == "source":
        return session.sources
    if name == "reference":
        return session.references
    raise HTTPException(status_code=404, detail=f"Unknown image collection: {name}")


def _prompt_response(session: RestorationSession) -> PromptResponse:
    return PromptResponse.from_state(session.prompt)


def _images_response(session: RestorationSession) -> ImagesResponse:
    active_id = session.sources.active_id
    return ImagesResponse(
        source=[ImageModel.from_handle(h, active=h.id == active_id) for h in session.sources],
        reference=[ImageModel.from_handle(h, active=True) for h in session.references],
        active_id=active_id,
    )


# ---------------------------------------------------------------------------
# Configuration.
# ---------------------------------------------------------------------------


@app.get("/api/config")
async def get_config() -> dict:
    """Return vocabularies and limits the frontend builds its controls from."""
    return {
        "version": __version__,
        "model_id": config.model_id,
        "max_source_images": config.max_source_images,
        "presets": list(PRESET_CLAUSES),
        "backdrop_styles": list(BACKDROP_STYLES),
        "default_backdrop_color": DEFAULT_BACKDROP_COLOR,
        "lighting_levels": len(LIGHTING_CLAUSES),
        "neutral_lighting_index": NEUTRAL_LIGHTING_INDEX,
    }


# ---------------------------------------------------------------------------
# Prompt routes.
# ---------------------------------------------------------------------------


@app.get("/api/prompt", response_model=PromptResponse)
async def get_prompt(request: Request) -> PromptResponse:
    return _prompt_response(_session(request))


@app.put("/api/prompt", response_model=PromptResponse)
async def edit_prompt(req: PromptTextRequest, request: Request) -> PromptResponse:
    """Replace the prompt with typed text, without canonicalising it."""
    session = _session(request)
    session.edit_prompt(req.text)
    return _prompt_response(session)


@app.post("/api/prompt/update", response_model=PromptResponse)
async def update_prompt(req: PromptUpdateRequest, request: Request) -> PromptResponse:
    """Apply a structured add/remove update and canonicalise the prompt.

    Raises:
        HTTPException: 400 if a removal pattern is not a valid regex.
    """
    try:
        patterns = [re.compile(p) for p in req.remove_patterns]
    except re.error as e:
        raise HTTPException(status_code=400, detail=f"Invalid pattern: {e}") from e

    session = _session(request)
    session.update_prompt(add=req.add, remove=[*req.remove, *patterns])
    return _prompt_response(session)


@app.post("/api/prompt/presets/toggle", response_model=PromptResponse)
async def toggle_preset(req: PresetToggleRequest, request: Request) -> PromptResponse:
    session = _session(request)
    try:
        session.toggle_preset(req.clause)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return _prompt_response(session)


@app.post("/api/prompt/presets/toggle-all", response_model=PromptResponse)
async def toggle_all_presets(request: Request) -> PromptResponse:
    session = _session(request)
    session.toggle_select_all()
    return _prompt_response(session)


@app.post("/api/prompt/backdrop", response_model=PromptResponse)
async def set_backdrop_style(req: BackdropStyleRequest, request: Request) -> PromptResponse:
    session = _session(request)
    session.set_backdrop_style(req.style)
    return _prompt_response(session)


@app.post("/api/prompt/backdrop/color", response_model=PromptResponse)
async def set_backdrop_color(req: BackdropColorRequest, request: Request) -> PromptResponse:
    session = _session(request)
    try:
        session.set_backdrop_color(req.color)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return _prompt_response(session)


@app.post("/api/prompt/lighting", response_model=PromptResponse)
async def set_lighting(req: LightingRequest, request: Request) -> PromptResponse:
    session = _session(request)
    session.set_lighting(req.index)
    return _prompt_response(session)


# ---------------------------------------------------------------------------
# Image routes.
# ---------------------------------------------------------------------------


@app.get("/api/images", response_model=ImagesResponse)
async def list_images(request: Request) -> ImagesResponse:
    return _images_response(_session(request))


@app.post("/api/images/source/active", response_model=ImagesResponse)
async def set_active_image(req: ActiveImageRequest, request: Request) -> ImagesResponse:
    """Select the source image the next restoration uses.

    Raises:
        HTTPException: 404 if the image is not in the source collection.
    """
    session = _session(request)
    try:
        session.sources.set_active(req.image_id)
    except KeyError as e:
        raise HTTPException(status_code=404, detail="Image not found") from e
    return _images_response(session)


@app.post("/api/images/{collection}", response_model=ImagesResponse)
async def upload_images(
    collection: str,
    request: Request,
    files: list[UploadFile] = File(...),
) -> ImagesResponse:
    """Add uploaded images to the source or reference collection.

    Source uploads beyond the collection's capacity are ignored; a reference
    upload replaces the current reference image.
    """
    session = _session(request)
    target = _collection(session, collection)
    payload = [(upload.filename or "image", await upload.read()) for upload in files]
    added = target.add_files(payload)
    logger.info("Uploaded %d of %d file(s) to %s", len(added), len(payload), collection)
    return _images_response(session)


@app.post("/api/images/{collection}/capture", response_model=ImagesResponse)
async def capture_image(collection: str, req: CaptureRequest, request: Request) -> ImagesResponse:
    """Capture one frame from the local camera into a collection.

    Raises:
        HTTPException: 400 if the source collection is already full.
    """
    session = _session(request)
    target = _collection(session, collection)
    with CameraCapture(request.app.state.camera_device, req.facing_mode) as camera:
        filename, data = camera.capture()
    if target.add_capture(filename, data) is None:
        raise HTTPException(status_code=400, detail="Source image limit reached")
    return _images_response(session)


@app.delete("/api/images/{collection}/{image_id}", response_model=ImagesResponse)
async def delete_image(collection: str, image_id: str, request: Request) -> ImagesResponse:
    session = _session(request)
    if not _collection(session, collection).remove(image_id):
        raise HTTPException(status_code=404, detail="Image not found")
    return _images_response(session)


@app.get("/api/previews/{token}")
async def get_preview(token: str, request: Request) -> Response:
    preview = _session(request).previews.resolve(token)
    if preview is None:
        raise HTTPException(status_code=404, detail="Preview not found")
    data, mime_type = preview
    return Response(content=data, media_type=mime_type)


# ---------------------------------------------------------------------------
# Restoration routes.
# ---------------------------------------------------------------------------


@app.post("/api/restore", response_model=RestorationResult)
async def restore(request: Request) -> RestorationResult:
    """Restore the active source image with the current prompt.

    Returns once both candidate images have arrived.

    Raises:
        HTTPException: 400 for missing input, 502 for API failures.
    """
    return await _session(request).restore()


@app.post("/api/restore/batch", response_model=list[RestorationResult])
async def restore_batch(request: Request) -> list[RestorationResult]:
    """Restore every source image in order, stopping at the first failure."""
    return await _session(request).restore_all()


@app.get("/api/status", response_model=StatusResponse)
async def get_status(request: Request) -> StatusResponse:
    session = _session(request)
    return StatusResponse(
        status=session.status.value,
        progress=session.progress,
        error=session.error,
        results=session.current_results,
    )


@app.post("/api/results/{result_id}/reuse", response_model=ImagesResponse)
async def reuse_result(result_id: str, req: ReuseRequest, request: Request) -> ImagesResponse:
    """Add a restored variant to the source images and make it active."""
    session = _session(request)
    try:
        session.reuse_result(result_id, req.index)
    except KeyError as e:
        raise HTTPException(status_code=404, detail="Result not found") from e
    return _images_response(session)


# ---------------------------------------------------------------------------
# History and saved prompts.
# ---------------------------------------------------------------------------


@app.get("/api/history", response_model=list[RestorationResult])
async def get_history(request: Request) -> list[RestorationResult]:
    return _session(request).history.entries()


@app.delete("/api/history/{result_id}")
async def delete_history_entry(result_id: str, request: Request) -> dict:
    if not _session(request).history.delete(result_id):
        raise HTTPException(status_code=404, detail="Result not found")
    return {"success": True, "deleted": result_id}


@app.get("/api/prompts/saved")
async def get_saved_prompts(request: Request) -> dict:
    return {"prompts": _session(request).saved_prompts.prompts()}


@app.post("/api/prompts/saved")
async def save_prompt(req: SavePromptRequest, request: Request) -> dict:
    """Save a prompt (the current one by default); duplicates are ignored."""
    session = _session(request)
    if req.prompt is None:
        added = session.save_current_prompt()
    else:
        added = session.saved_prompts.add(req.prompt)
    return {"saved": added, "prompts": session.saved_prompts.prompts()}


@app.get("/api/prompts/saved/export", response_class=PlainTextResponse)
async def export_saved_prompts(request: Request) -> PlainTextResponse:
    return PlainTextResponse(
        content=_session(request).saved_prompts.export_text(),
        headers={"Content-Disposition": 'attachment; filename="saved-prompts.txt"'},
    )


# ---------------------------------------------------------------------------
# CLI entry point.
# ---------------------------------------------------------------------------


def main() -> None:
    """Launch the uvicorn ASGI server.

    Reads host and port from :data:`~photorestorer.core.config.config`
    (``PHOTORESTORER_SERVER_HOST`` and ``PHOTORESTORER_SERVER_PORT``).
    Defaults to ``127.0.0.1:7860``.

    This function is registered as the ``photorestorer`` console script in
    ``pyproject.toml``.
    """
    import uvicorn

    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    uvicorn.run(
        "photorestorer.api.main:app",
        host=config.server_host,
        port=config.server_port,
        reload=False,
    )


if __name__ == "__main__":
    main()

"""Pydantic request and response models for the Photo Restorer API.

These models define the JSON schema for every API endpoint.  FastAPI uses
them for automatic request validation, serialisation, and OpenAPI
documentation generation.

Models
------
PromptTextRequest
    Payload for ``PUT /api/prompt`` — replaces the prompt with typed text.
PromptUpdateRequest
    Payload for ``POST /api/prompt/update`` — structured add/remove.
BackdropStyleRequest, BackdropColorRequest, LightingRequest, PresetToggleRequest
    Payloads for the individual structured controls.
PromptResponse
    The prompt text together with every derived control value.
StatusResponse
    Restoration status, progress, error and current results.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from photorestorer.core.history import RestorationResult
from photorestorer.core.media import ImageHandle
from photorestorer.core.prompt_state import LIGHTING_CLAUSES, PromptState, derive_view


class PromptTextRequest(BaseModel):
    """Request body for ``PUT /api/prompt``.

    Attributes:
        text: The prompt exactly as typed.  Stored verbatim.
    """

    text: str = Field(..., description="Prompt text, stored verbatim.")


class PromptUpdateRequest(BaseModel):
    """Request body for ``POST /api/prompt/update``.

    Attributes:
        add: Clauses to add.
        remove: Literal clauses to remove.
        remove_patterns: Regular expressions; clauses matching one in full
            are removed.
    """

    add: list[str] = Field(default_factory=list)
    remove: list[str] = Field(default_factory=list)
    remove_patterns: list[str] = Field(default_factory=list)


class PresetToggleRequest(BaseModel):
    clause: str = Field(..., description="Preset clause to toggle.")


class BackdropStyleRequest(BaseModel):
    style: Literal["none", "plain", "gradient"]


class BackdropColorRequest(BaseModel):
    color: str = Field(..., min_length=1, description="Backdrop colour, e.g. '#ffffff'.")


class LightingRequest(BaseModel):
    index: int = Field(..., ge=0, le=len(LIGHTING_CLAUSES) - 1)


class ActiveImageRequest(BaseModel):
    image_id: str


class CaptureRequest(BaseModel):
    facing_mode: Literal["user", "environment"] = "environment"


class ReuseRequest(BaseModel):
    index: int = Field(default=0, ge=0, description="Which restored variant to reuse.")


class SavePromptRequest(BaseModel):
    """Request body for ``POST /api/prompts/saved``.

    Attributes:
        prompt: Prompt to save.  ``None`` saves the current prompt.
    """

    prompt: str | None = None


class ControlsModel(BaseModel):
    presets: dict[str, bool]
    all_selected: bool
    backdrop_style: str
    backdrop_color: str
    lighting_index: int


class PromptResponse(BaseModel):
    text: str
    raw_override: bool
    controls: ControlsModel

    @classmethod
    def from_state(cls, state: PromptState) -> PromptResponse:
        view = derive_view(state.text)
        return cls(
            text=state.text,
            raw_override=state.raw_override,
            controls=ControlsModel(
                presets=view.presets,
                all_selected=view.all_selected,
                backdrop_style=view.backdrop_style,
                backdrop_color=view.backdrop_color,
                lighting_index=view.lighting_index,
            ),
        )


class ImageModel(BaseModel):
    id: str
    filename: str
    mime_type: str
    preview_url: str
    is_original: bool
    active: bool = False

    @classmethod
    def from_handle(cls, handle: ImageHandle, active: bool = False) -> ImageModel:
        return cls(
            id=handle.id,
            filename=handle.filename,
            mime_type=handle.mime_type,
            preview_url=handle.preview_url,
            is_original=handle.is_original,
            active=active,
        )


class ImagesResponse(BaseModel):
    source: list[ImageModel]
    reference: list[ImageModel]
    active_id: str | None


class StatusResponse(BaseModel):
    status: str
    progress: float
    error: str | None
    results: list[RestorationResult]

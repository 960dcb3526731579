"""Gemini request/response wrapper producing two restoration candidates.

One restoration turns a source image, a prompt and an optional style
reference into exactly two restored images.  The hosted model returns one
image per call, so :class:`RestorationClient` issues the same request twice
concurrently and joins the results:

1. Build one instruction from the prompt (:func:`build_instruction`).
2. Assemble the ordered parts: source image, optional reference image,
   instruction text (:func:`build_parts`).
3. Send two identical ``generate_content`` calls with image and text
   response modalities.
4. Join fail-fast: the first call to raise cancels its sibling and the whole
   restoration fails.
5. Take the first image of each response and the first non-default text
   note (the first response wins ties).
6. Require both images; fewer is an error naming how many arrived.

There is no retry and no partial-result salvage.

Usage
-----
::

    from google import genai

    client = RestorationClient(genai.Client(api_key=key), "gemini-2.5-flash-image-preview")
    outcome = await client.restore(source_handle, "restore color")
    outcome.restored_urls  # two data: URLs
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from google.genai import types

from photorestorer.core.media import ImageHandle, encode_data_url

logger = logging.getLogger(__name__)

CANDIDATE_COUNT = 2
DEFAULT_MODEL_TEXT = "No text response from model."

_BASE_INSTRUCTION = (
    "This is a photo restoration task. "
    "Do not add any watermarks, text, logos, or signatures to the output image."
)

_REFERENCE_INSTRUCTION = (
    " Image 1 is the photo to restore and is the only source of content for the output."
    " Image 2 is a reference for color palette, lighting, and mood only."
    " Never transfer people, objects, backgrounds, or any other content from image 2"
    " into the output."
    ' Apply this additional instruction to image 1: "{prompt}".'
)

_GENERAL_INSTRUCTION = (
    " Restore the photo: repair scratches, dust, and tears, and correct color balance,"
    " lighting, and contrast while preserving the original content and composition."
    ' The user\'s specific instruction is: "{prompt}".'
)


class RestorationError(Exception):
    """The generation API failed or returned too few images.

    The message is suitable for display to the user.
    """


@dataclass(frozen=True)
class RestorationOutcome:
    """Images and text produced by one restoration."""

    restored_urls: list[str]
    prompt: str
    model_text: str


def build_instruction(prompt: str, has_reference: bool) -> str:
    """Compose the instruction text sent after the image parts."""
    template = _REFERENCE_INSTRUCTION if has_reference else _GENERAL_INSTRUCTION
    return _BASE_INSTRUCTION + template.format(prompt=prompt)


def build_parts(
    source: ImageHandle,
    prompt: str,
    reference: ImageHandle | None = None,
) -> list[types.Part]:
    """Build the ordered multimodal parts for one request."""
    parts = [types.Part.from_bytes(data=source.data, mime_type=source.mime_type)]
    if reference is not None:
        parts.append(types.Part.from_bytes(data=reference.data, mime_type=reference.mime_type))
    parts.append(types.Part.from_text(text=build_instruction(prompt, reference is not None)))
    return parts


def extract_response(response: Any) -> tuple[str | None, str | None]:
    """Return the first image (as a data URL) and first text of a response."""
    image_url: str | None = None
    text: str | None = None

    for candidate in getattr(response, "candidates", None) or []:
        content = getattr(candidate, "content", None)
        for part in getattr(content, "parts", None) or []:
            inline = getattr(part, "inline_data", None)
            if inline is not None and getattr(inline, "data", None):
                if image_url is None:
                    image_url = encode_data_url(inline.data, inline.mime_type or "image/png")
            elif getattr(part, "text", None):
                if text is None:
                    text = part.text
        # Only the first candidate carries the answer.
        break

    return image_url, text


class RestorationClient:
    """Issue paired restoration requests against a Gemini model.

    Args:
        genai_client: A ``google.genai.Client`` (or any object exposing
            ``aio.models.generate_content``).
        model_id: Gemini model identifier.
    """

    def __init__(self, genai_client: Any, model_id: str) -> None:
        self._client = genai_client
        self.model_id = model_id

    async def restore(
        self,
        source: ImageHandle,
        prompt: str,
        reference: ImageHandle | None = None,
    ) -> RestorationOutcome:
        """Restore *source* into two candidate images.

        Raises:
            RestorationError: On any API failure or if fewer than two images
                are returned
        """
        parts = build_parts(source, prompt, reference)
        config = types.GenerateContentConfig(
            response_modalities=[types.Modality.IMAGE, types.Modality.TEXT],
        )

        logger.info(
            "Requesting %d restorations from %s (reference=%s)",
            CANDIDATE_COUNT,
            self.model_id,
            reference is not None,
        )

        tasks = [
            asyncio.ensure_future(
                self._client.aio.models.generate_content(
                    model=self.model_id,
                    contents=parts,
                    config=config,
                )
            )
            for _ in range(CANDIDATE_COUNT)
        ]
        try:
            responses = await asyncio.gather(*tasks)
        except Exception as e:
            for task in tasks:
                task.cancel()
            logger.error("Gemini API call failed: %s", e)
            raise RestorationError(f"API Error: {e}") from e

        restored_urls: list[str] = []
        model_text = DEFAULT_MODEL_TEXT
        for response in responses:
            image_url, text = extract_response(response)
            if image_url:
                restored_urls.append(image_url)
            if text and model_text == DEFAULT_MODEL_TEXT:
                model_text = text

        if len(restored_urls) < CANDIDATE_COUNT:
            logger.error("Expected %d images, received %d", CANDIDATE_COUNT, len(restored_urls))
            raise RestorationError(
                f"API did not return enough images: expected {CANDIDATE_COUNT}, "
                f"received {len(restored_urls)}."
            )

        return RestorationOutcome(restored_urls=restored_urls, prompt=prompt, model_text=model_text)

"""Tests for photorestorer.core.restoration_client.

Tests cover:
- Instruction wording with and without a style reference.
- Part ordering (source, reference, instruction).
- The paired request join: both images required, fail-fast on error.
- Selection of the model's text note.
"""

from __future__ import annotations

import asyncio
from types import SimpleNamespace

import pytest

from photorestorer.core.media import ImageHandle, decode_data_url
from photorestorer.core.restoration_client import (
    CANDIDATE_COUNT,
    DEFAULT_MODEL_TEXT,
    RestorationClient,
    RestorationError,
    build_instruction,
    build_parts,
    extract_response,
)


def _handle(data: bytes, handle_id: str = "photo.png-1") -> ImageHandle:
    return ImageHandle(
        id=handle_id,
        filename="photo.png",
        data=data,
        mime_type="image/png",
        preview_url=f"/api/previews/{handle_id}",
    )


class TestBuildInstruction:
    def test_general_instruction(self):
        text = build_instruction("restore color", has_reference=False)
        assert "watermarks" in text
        assert "scratches" in text
        assert '"restore color"' in text
        assert "Image 2" not in text

    def test_reference_instruction(self):
        text = build_instruction("sharpen details", has_reference=True)
        assert "watermarks" in text
        assert "Image 1" in text and "Image 2" in text
        assert "color palette, lighting, and mood" in text
        assert '"sharpen details"' in text


class TestBuildParts:
    def test_without_reference(self, png_bytes):
        parts = build_parts(_handle(png_bytes), "restore color")
        assert len(parts) == 2
        assert parts[0].inline_data.data == png_bytes
        assert parts[1].text == build_instruction("restore color", False)

    def test_reference_sits_between_source_and_text(self, png_bytes, png_factory):
        reference_bytes = png_factory((0, 0, 255))
        parts = build_parts(_handle(png_bytes), "p", _handle(reference_bytes, "ref.png-2"))
        assert [p.inline_data.data for p in parts[:2]] == [png_bytes, reference_bytes]
        assert "Image 2" in parts[2].text


class TestExtractResponse:
    def test_first_image_and_text(self, response_factory, png_bytes):
        url, text = extract_response(response_factory(image=png_bytes, text="note"))
        assert decode_data_url(url) == (png_bytes, "image/png")
        assert text == "note"

    def test_empty_response(self):
        assert extract_response(object()) == (None, None)


class TestRestorationClient:
    def test_two_calls_and_two_images(self, fake_genai, response_factory, png_factory, png_bytes):
        first, second = png_factory((1, 1, 1)), png_factory((2, 2, 2))
        genai = fake_genai(response_factory(image=first), response_factory(image=second))
        client = RestorationClient(genai, "gemini-test-image")

        outcome = asyncio.run(client.restore(_handle(png_bytes), "restore color"))

        assert len(genai.models.calls) == CANDIDATE_COUNT
        assert {call["model"] for call in genai.models.calls} == {"gemini-test-image"}
        assert [decode_data_url(u)[0] for u in outcome.restored_urls] == [first, second]
        assert outcome.prompt == "restore color"
        assert outcome.model_text == DEFAULT_MODEL_TEXT

    def test_requests_image_and_text_modalities(self, fake_genai, png_bytes):
        genai = fake_genai()
        asyncio.run(RestorationClient(genai, "m").restore(_handle(png_bytes), "p"))
        modalities = genai.models.calls[0]["config"].response_modalities
        assert [getattr(m, "value", m) for m in modalities] == ["IMAGE", "TEXT"]

    def test_reference_passed_to_every_call(self, fake_genai, png_bytes, png_factory):
        genai = fake_genai()
        reference = _handle(png_factory((9, 9, 9)), "ref.png-2")
        asyncio.run(RestorationClient(genai, "m").restore(_handle(png_bytes), "p", reference))
        assert all(len(call["contents"]) == 3 for call in genai.models.calls)

    def test_one_image_is_an_error(self, fake_genai, response_factory, png_bytes):
        genai = fake_genai(response_factory(image=png_bytes), response_factory(text="sorry"))
        with pytest.raises(RestorationError, match="received 1"):
            asyncio.run(RestorationClient(genai, "m").restore(_handle(png_bytes), "p"))

    def test_api_failure_is_wrapped(self, fake_genai, png_bytes):
        genai = fake_genai(RuntimeError("quota exceeded"))
        with pytest.raises(RestorationError, match="API Error: quota exceeded"):
            asyncio.run(RestorationClient(genai, "m").restore(_handle(png_bytes), "p"))

    def test_text_from_first_response_that_has_one(self, fake_genai, response_factory, png_bytes):
        genai = fake_genai(
            response_factory(image=png_bytes),
            response_factory(image=png_bytes, text="Removed the scratches."),
        )
        outcome = asyncio.run(RestorationClient(genai, "m").restore(_handle(png_bytes), "p"))
        assert outcome.model_text == "Removed the scratches."

    def test_first_text_wins(self, fake_genai, response_factory, png_bytes):
        genai = fake_genai(
            response_factory(image=png_bytes, text="first"),
            response_factory(image=png_bytes, text="second"),
        )
        outcome = asyncio.run(RestorationClient(genai, "m").restore(_handle(png_bytes), "p"))
        assert outcome.model_text == "first"


class GatedModels:
    """Calls block until both have started; the first then fails.

    A sequential client would never start the second call, so the gate also
    proves the two requests run concurrently.
    """

    def __init__(self) -> None:
        self.started = 0
        self.both_started = asyncio.Event()
        self.sibling_cancelled = False

    async def generate_content(self, *, model, contents, config):
        self.started += 1
        call = self.started
        if call == 2:
            self.both_started.set()
        await self.both_started.wait()
        if call == 1:
            raise RuntimeError("boom")
        try:
            await asyncio.sleep(30)
        except asyncio.CancelledError:
            self.sibling_cancelled = True
            raise


class TestFailFastJoin:
    def test_failure_cancels_sibling_call(self, png_bytes):
        models = GatedModels()
        genai = SimpleNamespace(aio=SimpleNamespace(models=models))
        client = RestorationClient(genai, "m")

        async def run() -> None:
            with pytest.raises(RestorationError, match="API Error: boom"):
                await asyncio.wait_for(client.restore(_handle(png_bytes), "p"), timeout=5)
            # Let the cancellation reach the sibling before checking.
            await asyncio.sleep(0)

        asyncio.run(run())

        assert models.started == CANDIDATE_COUNT
        assert models.sibling_cancelled is True

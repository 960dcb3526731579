"""Restoration session: images, prompt, history and the restoration state machine.

A :class:`RestorationSession` is the per-user state of the restorer.  It owns
the source and reference image collections, the prompt, the persisted
history and saved prompts, and the status of the current restoration.

Restoration State Machine
-------------------------
::

    idle ──restore()──> running ──> succeeded
                           │
                           └──────> failed

On entering ``running`` the previous results and error are cleared and
progress is reset to 0.  On success progress becomes 100, a
:class:`~photorestorer.core.history.RestorationResult` is created and
prepended to history.  On failure the error message is kept for display and
history is left untouched.

Only one restoration may run at a time; a second call while ``running`` is
rejected before any network traffic.  Once issued, a request cannot be
cancelled.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from enum import Enum

from photorestorer.core import prompt_state
from photorestorer.core.history import History, RestorationResult, SavedPrompts
from photorestorer.core.kv_store import KeyValueStore
from photorestorer.core.media import ImageCollection, ImageHandle, PreviewRegistry
from photorestorer.core.prompt_state import PromptState
from photorestorer.core.restoration_client import RestorationClient, RestorationError
from photorestorer.core.validation import ValidationError, validate_restore_inputs

logger = logging.getLogger(__name__)


class RestorationStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class RestorationSession:
    """State for one user of the restorer.

    Args:
        client: Client used to run restorations.
        store: Key-value store backing history and saved prompts.
        previews: Registry for image preview URLs (a new one by default).
        max_source_images: Capacity of the source image collection.
    """

    def __init__(
        self,
        client: RestorationClient,
        store: KeyValueStore,
        previews: PreviewRegistry | None = None,
        max_source_images: int = 10,
    ) -> None:
        self.client = client
        self.previews = previews or PreviewRegistry()
        self.sources = ImageCollection(self.previews, multiple=True, max_files=max_source_images)
        self.references = ImageCollection(self.previews, multiple=False)
        self.prompt = PromptState()
        self.history = History(store)
        self.saved_prompts = SavedPrompts(store)

        self.status = RestorationStatus.IDLE
        self.progress: float = 0.0
        self.current_results: list[RestorationResult] = []
        self.error: str | None = None

    def __repr__(self) -> str:
        return (
            f"RestorationSession(status={self.status.value}, "
            f"sources={len(self.sources)}, history={len(self.history)})"
        )

    @property
    def is_running(self) -> bool:
        return self.status is RestorationStatus.RUNNING

    # -- Restoration --------------------------------------------------------

    async def restore(self) -> RestorationResult:
        """Restore the active source image with the current prompt.

        Returns:
            The new result, already prepended to history

        Raises:
            ValidationError: If no source image or prompt is set, or a
                restoration is already running
            RestorationError: If the generation API fails
        """
        source = self.sources.active
        self._check_can_start(source is not None)
        self._begin()

        prompt = self.prompt.text
        try:
            result = await self._restore_one(source, prompt)
        except RestorationError as e:
            self._fail(str(e))
            raise
        except Exception as e:
            self._fail(f"An unknown error occurred: {e}")
            raise

        self.current_results = [result]
        self.progress = 100.0
        self.history.prepend(result)
        self.status = RestorationStatus.SUCCEEDED
        logger.info("Restoration %s succeeded", result.id)
        return result

    async def restore_all(self) -> list[RestorationResult]:
        """Restore every source image in order with the current prompt.

        Progress advances after each image.  The first failure stops the
        batch; history is only updated when every image succeeds.

        Raises:
            ValidationError: If no source image or prompt is set, or a
                restoration is already running
            RestorationError: On the first failed image, with its position
        """
        sources = self.sources.items
        self._check_can_start(bool(sources))
        self._begin()

        prompt = self.prompt.text
        total = len(sources)
        results: list[RestorationResult] = []
        for i, source in enumerate(sources):
            try:
                result = await self._restore_one(source, prompt)
            except RestorationError as e:
                message = f"Failed on image {i + 1}/{total}: {e}"
                self._fail(message)
                raise RestorationError(message) from e
            except Exception as e:
                self._fail(f"Failed on image {i + 1}/{total}: An unknown error occurred: {e}")
                raise
            results.append(result)
            self.current_results = list(results)
            self.progress = (i + 1) / total * 100

        self.history.prepend(*results)
        self.status = RestorationStatus.SUCCEEDED
        logger.info("Batch restoration of %d image(s) succeeded", total)
        return results

    async def _restore_one(self, source: ImageHandle, prompt: str) -> RestorationResult:
        outcome = await self.client.restore(source, prompt, self.references.active)
        return RestorationResult(
            original_url=source.preview_url,
            restored_urls=outcome.restored_urls,
            prompt=outcome.prompt,
            model_text=outcome.model_text,
        )

    def _check_can_start(self, has_source_image: bool) -> None:
        if self.is_running:
            raise ValidationError("A restoration is already in progress.")
        try:
            validate_restore_inputs(has_source_image, self.prompt.text)
        except ValidationError as e:
            self.error = str(e)
            raise

    def _begin(self) -> None:
        self.status = RestorationStatus.RUNNING
        self.current_results = []
        self.error = None
        self.progress = 0.0

    def _fail(self, message: str) -> None:
        logger.error("Restoration failed: %s", message)
        self.error = message
        self.status = RestorationStatus.FAILED

    # -- Results ------------------------------------------------------------

    def find_result(self, result_id: str) -> RestorationResult | None:
        """Look a result up in the current results, then in history."""
        current = next((r for r in self.current_results if r.id == result_id), None)
        return current or self.history.get(result_id)

    def reuse_result(self, result_id: str, index: int = 0) -> ImageHandle:
        """Promote a restored variant to the active source image.

        Raises:
            KeyError: If the result is unknown
            ValidationError: If the index is out of range or the source
                collection is full
        """
        result = self.find_result(result_id)
        if result is None:
            raise KeyError(result_id)
        if not 0 <= index < len(result.restored_urls):
            raise ValidationError(f"Result {result_id} has no image at index {index}")

        handle = self.sources.promote(result.restored_urls[index], f"restored-{result.id}-{index}.png")
        if handle is None:
            raise ValidationError(
                f"Source images are limited to {self.sources.max_files}. Remove one first."
            )
        self.sources.set_active(handle.id)
        return handle

    # -- Prompt -------------------------------------------------------------

    def edit_prompt(self, text: str) -> PromptState:
        self.prompt = prompt_state.edit_text(self.prompt, text)
        return self.prompt

    def update_prompt(
        self,
        add: Iterable[str] = (),
        remove: Iterable[str | re.Pattern[str]] = (),
    ) -> PromptState:
        self.prompt = prompt_state.update(self.prompt, add, remove)
        return self.prompt

    def toggle_preset(self, clause: str) -> PromptState:
        self.prompt = prompt_state.toggle_preset(self.prompt, clause)
        return self.prompt

    def toggle_select_all(self) -> PromptState:
        self.prompt = prompt_state.toggle_select_all(self.prompt)
        return self.prompt

    def set_backdrop_style(self, style: str) -> PromptState:
        self.prompt = prompt_state.set_backdrop_style(self.prompt, style)
        return self.prompt

    def set_backdrop_color(self, color: str) -> PromptState:
        self.prompt = prompt_state.set_backdrop_color(self.prompt, color)
        return self.prompt

    def set_lighting(self, index: int) -> PromptState:
        self.prompt = prompt_state.set_lighting(self.prompt, index)
        return self.prompt

    def save_current_prompt(self) -> bool:
        """Save the current prompt text; returns False if empty or already saved."""
        return self.saved_prompts.add(self.prompt.text)

    def load_saved_prompt(self, prompt: str) -> PromptState:
        """Replace the prompt with a saved one.

        Raises:
            KeyError: If the prompt was never saved
        """
        if prompt not in self.saved_prompts:
            raise KeyError(prompt)
        return self.edit_prompt(prompt)

    def close(self) -> None:
        """Release every preview held by the image collections."""
        self.sources.clear()
        self.references.clear()

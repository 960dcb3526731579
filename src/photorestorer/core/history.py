"""Restoration history and saved prompts, persisted through a key-value store.

Both stores read their key once at construction and write the whole list back
on every mutation.  Entries that fail validation on load (for example from an
older, incompatible file) are dropped with a warning rather than breaking
startup.
"""

from __future__ import annotations

import logging
import time
import uuid

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from photorestorer.core.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

HISTORY_KEY = "restoration-history"
SAVED_PROMPTS_KEY = "saved-prompts"
EXPORT_SEPARATOR = "\n\n---\n\n"


def now_ms() -> int:
    """Current time in milliseconds since the epoch."""
    return int(time.time() * 1000)


class RestorationResult(BaseModel):
    """One completed restoration.  Immutable once created.

    Attributes:
        id: Unique result identifier.
        original_url: Preview URL of the source image.
        restored_urls: The two restored images as data URLs, in call order.
        prompt: Prompt used for the restoration.
        model_text: Text note returned by the model.
        timestamp: Creation time in milliseconds since the epoch.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: f"result-{uuid.uuid4().hex}")
    original_url: str
    restored_urls: list[str] = Field(..., min_length=2, max_length=2)
    prompt: str
    model_text: str = ""
    timestamp: int = Field(default_factory=now_ms)


class History:
    """Newest-first list of restoration results."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store
        self._entries: list[RestorationResult] = []
        raw_entries = store.get(HISTORY_KEY, [])
        if not isinstance(raw_entries, list):
            raw_entries = []
        for raw in raw_entries:
            try:
                self._entries.append(RestorationResult.model_validate(raw))
            except ValidationError as e:
                logger.warning("Dropping invalid history entry: %s", e)

    def __len__(self) -> int:
        return len(self._entries)

    def entries(self) -> list[RestorationResult]:
        """Entries in stored order: each prepended batch ahead of older ones."""
        return list(self._entries)

    def get(self, result_id: str) -> RestorationResult | None:
        return next((entry for entry in self._entries if entry.id == result_id), None)

    def prepend(self, *results: RestorationResult) -> None:
        """Insert results at the front, keeping their given order."""
        self._entries = list(results) + self._entries
        self._persist()

    def delete(self, result_id: str) -> bool:
        """Delete one entry by id.

        Returns:
            True if an entry was removed
        """
        remaining = [entry for entry in self._entries if entry.id != result_id]
        if len(remaining) == len(self._entries):
            return False
        self._entries = remaining
        self._persist()
        logger.info("Deleted history entry %s", result_id)
        return True

    def _persist(self) -> None:
        self._store.set(HISTORY_KEY, [entry.model_dump() for entry in self._entries])


class SavedPrompts:
    """Insertion-ordered set of prompts the user chose to keep."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store
        raw = store.get(SAVED_PROMPTS_KEY, [])
        if not isinstance(raw, list):
            raw = []
        self._prompts: list[str] = []
        for item in raw:
            if isinstance(item, str) and item and item not in self._prompts:
                self._prompts.append(item)

    def __contains__(self, prompt: str) -> bool:
        return prompt in self._prompts

    def __len__(self) -> int:
        return len(self._prompts)

    def prompts(self) -> list[str]:
        return list(self._prompts)

    def add(self, prompt: str) -> bool:
        """Save a prompt unless it is empty or already saved.

        Returns:
            True if the prompt was added
        """
        if not prompt or prompt in self._prompts:
            return False
        self._prompts.append(prompt)
        self._store.set(SAVED_PROMPTS_KEY, self._prompts)
        return True

    def export_text(self) -> str:
        """Render the saved prompts as a plain-text document."""
        return EXPORT_SEPARATOR.join(self._prompts)

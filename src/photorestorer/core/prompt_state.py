"""Prompt state model: one prompt string, many derived controls.

The restoration instruction is a single free-text string.  Every structured
control (preset checkboxes, the "select all" toggle, the backdrop style and
colour, the lighting slider) is *derived* from that string on demand and
every control change is expressed as an edit of that string.  There is no
second copy of the control state that could drift out of sync.

Clause Model
------------
The prompt is treated as a comma-delimited, ordered set of clauses::

    "restore color, increase contrast, fix the sky, with a plain #ffffff backdrop"

    -> ["restore color", "increase contrast", "fix the sky",
        "with a plain #ffffff backdrop"]

Three clause families are recognised:

- **Preset clauses** — the seven entries of :data:`PRESET_CLAUSES`.
- **Backdrop clause** — ``with a {plain|gradient} {color} backdrop``.
- **Lighting clause** — one of the 21 entries of :data:`LIGHTING_CLAUSES`
  (slot 10 is the empty string and never appears in a prompt).

Anything else is a custom clause and is preserved verbatim.

Canonical Form
--------------
Structured edits go through :func:`apply_update`, which rewrites the prompt
into canonical form: preset clauses first in vocabulary order, then all other
clauses in their existing relative order, joined with ``", "``.  Canonical
form is a fixed point: ``apply_update(apply_update(t)) == apply_update(t)``.

Manual edits bypass canonicalisation (see :func:`edit_text`); the state is
flagged as a raw override until the next structured edit.

Usage
-----
::

    state = PromptState()
    state = toggle_preset(state, "increase contrast")
    state = set_backdrop_style(state, "gradient")
    state = set_lighting(state, 14)

    view = derive_view(state.text)
    view.presets["increase contrast"]  # True
    view.backdrop_style                # "gradient"
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from typing import Literal

# ---------------------------------------------------------------------------
# Fixed vocabularies.
# ---------------------------------------------------------------------------

PRESET_CLAUSES: tuple[str, ...] = (
    "remove scratches and dust",
    "repair tears and creases",
    "remove stains and blemishes",
    "restore color",
    "increase contrast",
    "sharpen details",
    "reduce noise and grain",
)

NEUTRAL_LIGHTING_INDEX = 10

LIGHTING_CLAUSES: tuple[str, ...] = (
    "make the lighting pitch dark",
    "make the lighting extremely dark",
    "make the lighting very dark",
    "make the lighting dark",
    "make the lighting noticeably darker",
    "make the lighting darker",
    "make the lighting moderately darker",
    "make the lighting slightly darker",
    "make the lighting a little darker",
    "make the lighting a touch darker",
    "",
    "make the lighting a touch brighter",
    "make the lighting a little brighter",
    "make the lighting slightly brighter",
    "make the lighting moderately brighter",
    "make the lighting brighter",
    "make the lighting noticeably brighter",
    "make the lighting bright",
    "make the lighting very bright",
    "make the lighting extremely bright",
    "make the lighting dazzlingly bright",
)

BackdropStyle = Literal["none", "plain", "gradient"]

BACKDROP_STYLES: tuple[str, ...] = ("none", "plain", "gradient")
DEFAULT_BACKDROP_COLOR = "#ffffff"

BACKDROP_PATTERN = re.compile(r"with a (plain|gradient) (\S+) backdrop")

_CLAUSE_SEPARATOR = ", "


@dataclass(frozen=True)
class PromptState:
    """The authoritative prompt text.

    Attributes:
        text: The prompt string shown in the text area.
        raw_override: True when ``text`` was typed by hand and has not been
            canonicalised since.
    """

    text: str = ""
    raw_override: bool = False


@dataclass(frozen=True)
class ControlState:
    """Structured control values derived from a prompt string."""

    presets: dict[str, bool] = field(default_factory=dict)
    all_selected: bool = False
    backdrop_style: str = "none"
    backdrop_color: str = DEFAULT_BACKDROP_COLOR
    lighting_index: int = NEUTRAL_LIGHTING_INDEX


# ---------------------------------------------------------------------------
# Parsing and composition.
# ---------------------------------------------------------------------------


def split_clauses(text: str) -> list[str]:
    """Split a prompt on ``", "`` into trimmed, non-empty, de-duplicated clauses.

    Duplicates collapse onto their first occurrence.  A comma without a
    following space stays inside its clause.
    """
    clauses: list[str] = []
    seen: set[str] = set()
    for raw in text.split(_CLAUSE_SEPARATOR):
        clause = raw.strip()
        if clause and clause not in seen:
            seen.add(clause)
            clauses.append(clause)
    return clauses


def canonicalize(clauses: Iterable[str]) -> str:
    """Join clauses in canonical order.

    Preset clauses come first in vocabulary order; everything else follows
    in its existing relative order.
    """
    unique = split_clauses(_CLAUSE_SEPARATOR.join(clauses))
    present = set(unique)
    presets = [clause for clause in PRESET_CLAUSES if clause in present]
    others = [clause for clause in unique if clause not in PRESET_CLAUSES]
    return _CLAUSE_SEPARATOR.join(presets + others)


def _is_removed(clause: str, remove: Iterable[str | re.Pattern[str]]) -> bool:
    for item in remove:
        if isinstance(item, re.Pattern):
            if item.fullmatch(clause):
                return True
        elif clause == item:
            return True
    return False


def apply_update(
    text: str,
    add: Iterable[str] = (),
    remove: Iterable[str | re.Pattern[str]] = (),
) -> str:
    """Return *text* with clauses removed, added and canonicalised.

    Args:
        text: Current prompt text.
        add: Clauses to union in.  Empty strings are ignored.
        remove: Literal clauses, or compiled patterns matched against the
            whole clause, to drop before adding.

    Returns:
        The new prompt in canonical form.
    """
    remove = list(remove)
    clauses = [clause for clause in split_clauses(text) if not _is_removed(clause, remove)]
    for clause in add:
        clause = clause.strip()
        if clause and clause not in clauses:
            clauses.append(clause)
    return canonicalize(clauses)


def compose_backdrop_clause(style: str, color: str) -> str:
    """Build the backdrop clause for a plain or gradient style."""
    return f"with a {style} {color} backdrop"


def derive_view(text: str) -> ControlState:
    """Derive every structured control value from the prompt text."""
    clauses = split_clauses(text)
    present = set(clauses)

    presets = {clause: clause in present for clause in PRESET_CLAUSES}

    backdrop_style = "none"
    backdrop_color = DEFAULT_BACKDROP_COLOR
    for clause in clauses:
        match = BACKDROP_PATTERN.fullmatch(clause)
        if match:
            backdrop_style, backdrop_color = match.group(1), match.group(2)
            break

    lighting_index = NEUTRAL_LIGHTING_INDEX
    for clause in clauses:
        if clause and clause in LIGHTING_CLAUSES:
            lighting_index = LIGHTING_CLAUSES.index(clause)
            break

    return ControlState(
        presets=presets,
        all_selected=all(presets.values()),
        backdrop_style=backdrop_style,
        backdrop_color=backdrop_color,
        lighting_index=lighting_index,
    )


# ---------------------------------------------------------------------------
# Mutators.  Each returns a new PromptState; none mutate their input.
# ---------------------------------------------------------------------------


def update(
    state: PromptState,
    add: Iterable[str] = (),
    remove: Iterable[str | re.Pattern[str]] = (),
) -> PromptState:
    """Apply a structured update, leaving raw override mode."""
    return PromptState(text=apply_update(state.text, add, remove), raw_override=False)


def toggle_preset(state: PromptState, clause: str) -> PromptState:
    """Add the preset clause if absent, remove it if present.

    Raises:
        ValueError: If *clause* is not in :data:`PRESET_CLAUSES`
    """
    if clause not in PRESET_CLAUSES:
        raise ValueError(f"Unknown preset: {clause!r}")
    if clause in split_clauses(state.text):
        return update(state, remove=[clause])
    return update(state, add=[clause])


def toggle_select_all(state: PromptState) -> PromptState:
    """Select every preset, or clear them all when all are selected."""
    if derive_view(state.text).all_selected:
        return update(state, remove=PRESET_CLAUSES)
    return update(state, add=PRESET_CLAUSES)


def set_backdrop_style(state: PromptState, style: str) -> PromptState:
    """Switch the backdrop style, keeping the current colour.

    Raises:
        ValueError: If *style* is not one of :data:`BACKDROP_STYLES`
    """
    if style not in BACKDROP_STYLES:
        raise ValueError(f"Unknown backdrop style: {style!r}")

    # Read the colour before the old clause is removed.
    color = derive_view(state.text).backdrop_color
    if style == "none":
        return update(state, remove=[BACKDROP_PATTERN])
    return update(state, add=[compose_backdrop_clause(style, color)], remove=[BACKDROP_PATTERN])


def set_backdrop_color(state: PromptState, color: str) -> PromptState:
    """Change the backdrop colour; a no-op while no backdrop is active.

    Raises:
        ValueError: If *color* is empty or contains whitespace or commas
    """
    color = color.strip()
    if not color or any(ch.isspace() or ch == "," for ch in color):
        raise ValueError(f"Invalid backdrop color: {color!r}")

    style = derive_view(state.text).backdrop_style
    if style == "none":
        return state
    return update(state, add=[compose_backdrop_clause(style, color)], remove=[BACKDROP_PATTERN])


def set_lighting(state: PromptState, index: int) -> PromptState:
    """Replace the lighting clause with the one at *index*.

    Index 10 is neutral: the lighting clause is removed and nothing is added.

    Raises:
        ValueError: If *index* is outside 0-20
    """
    if not 0 <= index < len(LIGHTING_CLAUSES):
        raise ValueError(f"Lighting index must be 0-{len(LIGHTING_CLAUSES) - 1}, got {index}")
    lighting = [clause for clause in LIGHTING_CLAUSES if clause]
    return update(state, add=[LIGHTING_CLAUSES[index]], remove=lighting)


def edit_text(state: PromptState, text: str) -> PromptState:
    """Replace the prompt with hand-typed text, verbatim."""
    return replace(state, text=text, raw_override=True)

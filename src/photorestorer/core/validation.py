"""Validation utilities for Photo Restorer inputs."""

import logging

logger = logging.getLogger(__name__)

MISSING_INPUT_MESSAGE = "Please upload at least one image and provide a prompt."


class ValidationError(Exception):
    """User-friendly validation error.

    This exception is raised when user input fails validation.
    The message is intended to be displayed directly to the user.
    """

    pass


def validate_restore_inputs(has_source_image: bool, prompt: str) -> None:
    """Reject a restoration request before any network call is made.

    Args:
        has_source_image: Whether a source image is selected
        prompt: Restoration prompt text

    Raises:
        ValidationError: If the image or the prompt is missing
    """
    if not has_source_image or not prompt or not prompt.strip():
        raise ValidationError(MISSING_INPUT_MESSAGE)
    validate_prompt_content(prompt)


def validate_prompt_content(prompt: str, max_length: int = 10000) -> None:
    """Validate prompt text content.

    Args:
        prompt: Prompt text to validate
        max_length: Maximum allowed prompt length in characters

    Raises:
        ValidationError: If prompt is too long
    """
    if len(prompt) > max_length:
        raise ValidationError(
            f"Prompt is too long ({len(prompt)} characters). Maximum is {max_length} characters."
        )


def sanitize_filename_input(text: str) -> str:
    """Sanitize user input for use in filenames.

    Args:
        text: User input text

    Returns:
        Sanitized text safe for filenames
    """
    # Remove potentially problematic characters
    invalid_chars = '<>:"/\\|?*'
    for char in invalid_chars:
        text = text.replace(char, "_")

    # Limit length
    return text[:100]

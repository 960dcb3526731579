"""Unit tests for validation utilities."""

import pytest

from photorestorer.core.validation import (
    MISSING_INPUT_MESSAGE,
    ValidationError,
    sanitize_filename_input,
    validate_prompt_content,
    validate_restore_inputs,
)


class TestValidationError:
    """Tests for ValidationError exception."""

    def test_validation_error_message(self):
        """ValidationError carries its message for display."""
        msg = "Custom validation error"
        with pytest.raises(ValidationError, match=msg):
            raise ValidationError(msg)


class TestValidateRestoreInputs:
    """Tests for validate_restore_inputs function."""

    def test_valid_inputs_pass(self):
        validate_restore_inputs(True, "restore color")  # Should not raise

    @pytest.mark.parametrize(
        "has_image, prompt",
        [(False, "restore color"), (True, ""), (True, "   "), (False, "")],
    )
    def test_missing_input_raises(self, has_image, prompt):
        """Either a missing image or an empty prompt gives the same message."""
        with pytest.raises(ValidationError) as exc_info:
            validate_restore_inputs(has_image, prompt)
        assert str(exc_info.value) == MISSING_INPUT_MESSAGE

    def test_overlong_prompt_raises(self):
        with pytest.raises(ValidationError, match="Prompt is too long"):
            validate_restore_inputs(True, "a" * 10001)


class TestValidatePromptContent:
    """Tests for validate_prompt_content function."""

    def test_prompt_at_limit_passes(self):
        validate_prompt_content("a" * 10000)  # Should not raise

    def test_custom_max_length(self):
        """Custom max length is respected."""
        prompt = "a" * 150
        validate_prompt_content(prompt, max_length=200)
        with pytest.raises(ValidationError):
            validate_prompt_content(prompt, max_length=100)


class TestSanitizeFilenameInput:
    """Tests for sanitize_filename_input function."""

    def test_clean_filename_unchanged(self):
        assert sanitize_filename_input("grandma-1952.jpg") == "grandma-1952.jpg"

    def test_path_separators_replaced(self):
        """Uploaded names cannot smuggle directory parts."""
        result = sanitize_filename_input("../scans\\album:1.png")
        assert "/" not in result and "\\" not in result and ":" not in result
        assert result.endswith(".png")

    def test_length_limit(self):
        assert len(sanitize_filename_input("a" * 200)) == 100

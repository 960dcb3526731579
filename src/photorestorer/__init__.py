"""Photo Restorer - Prompt-driven photo restoration on top of Gemini image models."""

__version__ = "0.1.0"

from photorestorer.core.config import RestorerConfig, config

__all__ = [
    "RestorerConfig",
    "config",
]

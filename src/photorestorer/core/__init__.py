"""Core functionality for photo restoration.

This module provides the core components of Photo Restorer:

- **prompt_state**: The single-string prompt model and its derived controls
- **RestorationClient**: Paired Gemini requests producing two candidates
- **RestorationSession**: Images, prompt, history and the restoration state machine
- **JsonFileStore**: JSON-backed key-value persistence with in-memory fallback
- **RestorerConfig**: Configuration management using Pydantic Settings
- **config**: Global configuration instance (loads from environment variables)

Architecture Overview
---------------------
1. **Configuration Layer** (config.py):
   - Environment-based configuration using Pydantic Settings
   - Settings prefixed with PHOTORESTORER_; the API key also reads GEMINI_API_KEY

2. **Domain Layer** (prompt_state.py, media.py, camera.py, history.py):
   - Pure prompt parse/compose functions over frozen state
   - Image collections owning preview URLs; scoped camera streams
   - Restoration results, history and saved prompts

3. **Integration Layer** (restoration_client.py, kv_store.py):
   - google-genai requests with a fail-fast join of two concurrent calls
   - Best-effort JSON persistence

4. **Orchestration** (session.py):
   - The idle/running/succeeded/failed restoration state machine

Usage Example
-------------
    import asyncio

    from google import genai

    from photorestorer.core import JsonFileStore, RestorationClient, RestorationSession, config

    client = RestorationClient(genai.Client(api_key=config.require_api_key()), config.model_id)
    session = RestorationSession(client, JsonFileStore(config.data_dir))
    session.sources.add_files([("old.jpg", open("old.jpg", "rb").read())])
    session.toggle_preset("remove scratches and dust")
    result = asyncio.run(session.restore())
"""

from photorestorer.core.config import MissingCredentialsError, RestorerConfig, config
from photorestorer.core.kv_store import JsonFileStore, KeyValueStore, MemoryStore
from photorestorer.core.restoration_client import RestorationClient, RestorationError
from photorestorer.core.session import RestorationSession, RestorationStatus

__all__ = [
    "JsonFileStore",
    "KeyValueStore",
    "MemoryStore",
    "MissingCredentialsError",
    "RestorationClient",
    "RestorationError",
    "RestorationSession",
    "RestorationStatus",
    "RestorerConfig",
    "config",
]

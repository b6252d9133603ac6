"""
Runtime configuration for the inspector.

Uses ``pydantic_settings.BaseSettings`` for environment variable binding,
type coercion and validation.  ``.env`` files are loaded by the entry
points with ``python-dotenv`` before settings are first read.
"""

from __future__ import annotations

import functools

import pydantic
import pydantic_settings


class Settings(pydantic_settings.BaseSettings):
    """Inspector settings.

    Attributes:
        store_path: JSON file backing the key-value store.
        strict_ignore_matching: Match ignored domains on label boundaries
            instead of raw hostname suffixes.
        csp_policy_excerpt: Characters of the violated policy kept in
            CSP evidence, at most 300.
        debug_logging: Emit debug-level log lines.
        host: API bind address.
        port: API port.
    """

    model_config = pydantic_settings.SettingsConfigDict(populate_by_name=True)

    store_path: str = pydantic.Field(
        default=".cache/inspector.json", validation_alias="INSPECTOR_STORE_PATH"
    )
    strict_ignore_matching: bool = pydantic.Field(
        default=False, validation_alias="INSPECTOR_STRICT_IGNORE"
    )
    csp_policy_excerpt: int = pydantic.Field(
        default=300, ge=0, le=300, validation_alias="INSPECTOR_CSP_EXCERPT"
    )
    debug_logging: bool = pydantic.Field(default=False, validation_alias="INSPECTOR_DEBUG")
    host: str = pydantic.Field(default="127.0.0.1", validation_alias="UVICORN_HOST")
    port: int = pydantic.Field(default=3017, validation_alias="UVICORN_PORT")


@functools.lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()

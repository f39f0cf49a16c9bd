from __future__ import annotations

import os
from dataclasses import dataclass, field, replace

VAR_PREFIX = "DOCSHOTS_VAR_"


def _env_bool(name: str, default: bool) -> bool:
    val = os.getenv(name)
    if val is None:
        return default
    return val.lower() in {"1", "true", "yes", "on"}


def env_variables(environ: dict[str, str] | None = None) -> dict[str, str]:
    """Template variables from ``DOCSHOTS_VAR_<NAME>`` (name lower-cased)."""
    environ = dict(os.environ) if environ is None else environ
    return {
        key[len(VAR_PREFIX) :].lower(): value
        for key, value in environ.items()
        if key.startswith(VAR_PREFIX) and len(key) > len(VAR_PREFIX)
    }


@dataclass
class Settings:
    output_dir: str = os.getenv("OUTPUT_DIR", "docs/images")
    headless: bool = _env_bool("HEADLESS", True)
    slow_mo_ms: int = int(os.getenv("SLOW_MO_MS", "0"))
    viewport_width: int = int(os.getenv("VIEWPORT_WIDTH", "1920"))
    viewport_height: int = int(os.getenv("VIEWPORT_HEIGHT", "1080"))
    ignore_https_errors: bool = _env_bool("IGNORE_HTTPS_ERRORS", True)
    default_timeout_ms: int = int(os.getenv("DEFAULT_TIMEOUT_MS", "30000"))
    event_backend: str = os.getenv("EVENT_BACKEND", "inmemory")  # inmemory|redis
    redis_url: str | None = os.getenv("REDIS_URL")
    worker_concurrency: int = int(os.getenv("WORKER_CONCURRENCY", "1"))
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    variables: dict[str, str] = field(default_factory=env_variables)

    def with_overrides(self, **overrides) -> Settings:
        """Copy with the non-None overrides applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


settings = Settings()

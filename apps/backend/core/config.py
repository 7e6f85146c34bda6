"""
Runtime configuration.

Settings are read once at process start (entry points call load_dotenv()
first) and the resulting object is handed to every component that needs it.
"""
import os
import logging
from dataclasses import dataclass
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

DEFAULT_LLM_MODEL = "llama-3.1-8b-instant"
MAX_RENDER_TIMEOUT_MS = 20000


class ConfigurationError(Exception):
    """Raised when a setting is missing or malformed."""
    pass


def _flag(value: Optional[str], default: bool) -> bool:
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _int(env: Mapping[str, str], name: str, default: int, minimum: int = 0) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")
    if value < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum}, got {value}")
    return value


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}")


def _str(env: Mapping[str, str], name: str) -> Optional[str]:
    raw = env.get(name)
    if raw is None:
        return None
    raw = raw.strip()
    return raw or None


@dataclass(frozen=True)
class Settings:
    """All knobs for fetching, extraction, escalation and the queues."""

    renderer_url: Optional[str] = None
    renderer_key: Optional[str] = None
    renderer_wait: str = "domcontentloaded"
    renderer_timeout_ms: int = 12000

    llm_endpoint: Optional[str] = None
    llm_api_key: Optional[str] = None
    llm_model: str = DEFAULT_LLM_MODEL
    extract_llm_model: Optional[str] = None
    use_extract_llm: bool = True
    use_notes_llm: bool = True

    batch_size: int = 12
    requests_per_minute: int = 60
    notes_batch_size: int = 12
    notes_per_minute: int = 60

    drain_budget_seconds: float = 300.0
    drain_safety_margin_seconds: float = 15.0
    claim_timeout_seconds: float = 900.0

    http_timeout_seconds: float = 30.0
    http_max_retries: int = 2

    database_url: Optional[str] = None
    hosts_config_path: Optional[str] = None
    internal_api_key: Optional[str] = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if env is None else env

        timeout_ms = _int(env, "RENDERER_TIMEOUT_MS", 12000, minimum=1)
        if timeout_ms > MAX_RENDER_TIMEOUT_MS:
            logger.info(f"[config] RENDERER_TIMEOUT_MS={timeout_ms} clamped to {MAX_RENDER_TIMEOUT_MS}")
            timeout_ms = MAX_RENDER_TIMEOUT_MS

        return cls(
            renderer_url=_str(env, "RENDERER_URL"),
            renderer_key=_str(env, "RENDERER_KEY"),
            renderer_wait=_str(env, "RENDERER_WAIT") or "domcontentloaded",
            renderer_timeout_ms=timeout_ms,
            llm_endpoint=_str(env, "LLM_ENDPOINT"),
            llm_api_key=_str(env, "LLM_API_KEY"),
            llm_model=_str(env, "LLM_MODEL") or DEFAULT_LLM_MODEL,
            extract_llm_model=_str(env, "EXTRACT_LLM_MODEL"),
            use_extract_llm=_flag(env.get("USE_EXTRACT_LLM"), True),
            use_notes_llm=_flag(env.get("USE_LLM"), True),
            batch_size=_int(env, "BATCH_SIZE", 12, minimum=1),
            requests_per_minute=_int(env, "REQUESTS_PER_MINUTE", 60, minimum=1),
            notes_batch_size=_int(env, "NOTES_BATCH_SIZE", 12, minimum=1),
            notes_per_minute=_int(env, "NOTES_PER_MINUTE", 60, minimum=1),
            drain_budget_seconds=_float(env, "DRAIN_BUDGET_SECONDS", 300.0),
            drain_safety_margin_seconds=_float(env, "DRAIN_SAFETY_MARGIN_SECONDS", 15.0),
            claim_timeout_seconds=_float(env, "CLAIM_TIMEOUT_SECONDS", 900.0),
            http_timeout_seconds=_float(env, "HTTP_TIMEOUT_SECONDS", 30.0),
            http_max_retries=_int(env, "HTTP_MAX_RETRIES", 2),
            database_url=_str(env, "DATABASE_URL"),
            hosts_config_path=_str(env, "HOSTS_CONFIG_PATH"),
            internal_api_key=_str(env, "INTERNAL_API_KEY"),
            log_level=(_str(env, "LOG_LEVEL") or "INFO").upper(),
        )

    @property
    def renderer_enabled(self) -> bool:
        return bool(self.renderer_url)

    @property
    def llm_configured(self) -> bool:
        return bool(self.llm_endpoint and self.llm_api_key)

    @property
    def llm_extract_enabled(self) -> bool:
        return self.use_extract_llm and self.llm_configured

    @property
    def llm_notes_enabled(self) -> bool:
        return self.use_notes_llm and self.llm_configured

    @property
    def extraction_model(self) -> str:
        return self.extract_llm_model or self.llm_model

    @property
    def parse_gap_seconds(self) -> float:
        return 60.0 / max(1, self.requests_per_minute)

    @property
    def notes_gap_seconds(self) -> float:
        return 60.0 / max(1, self.notes_per_minute)

    def capabilities(self) -> dict:
        """Feature summary safe to expose (no secrets)."""
        return {
            "renderer": self.renderer_enabled,
            "llm_extract": self.llm_extract_enabled,
            "llm_notes": self.llm_notes_enabled,
            "database": bool(self.database_url),
        }

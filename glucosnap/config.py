"""
Service configuration for the GlucoSnap analysis service.

Everything is read from the environment exactly once (after loading a local
.env file) and frozen into a ServiceConfig that is passed to the pieces that
need it.
"""
import os
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.dify.ai/v1"
DEFAULT_USER = "diabetes-app-user"
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024  # 10MB
DEFAULT_ALLOWED_EXTENSIONS = frozenset({"jpg", "jpeg", "png", "gif", "webp"})

SUPPORTED_LANGUAGES = ("zh", "en")
DEFAULT_LANGUAGE = "zh"

# Upstream app keys look like "app-xxxx"; those are workflow apps.
WORKFLOW_KEY_PREFIX = "app-"


class ApiStyle(str, Enum):
    """Which upstream request shape the credential belongs to."""
    WORKFLOW = "workflow"
    COMPLETION = "completion"


def select_api_style(api_key: Optional[str]) -> ApiStyle:
    """Pick the upstream API style from the credential prefix.

    The prefix is the only signal the upstream gives us. There is no version
    field, so a third key format would silently be treated as completion-style.
    """
    if api_key and api_key.startswith(WORKFLOW_KEY_PREFIX):
        return ApiStyle.WORKFLOW
    return ApiStyle.COMPLETION


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={value!r}, using {default}")
        return default


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={value!r}, using {default}")
        return default


def _env_list(name: str) -> Optional[list[str]]:
    value = os.getenv(name)
    if not value:
        return None
    return [item.strip() for item in value.split(",") if item.strip()]


def normalize_language(language: Optional[str], default: str = DEFAULT_LANGUAGE) -> str:
    """Map a requested language tag onto a supported one."""
    if not language:
        return default
    tag = language.strip().lower().replace("_", "-").split("-")[0]
    return tag if tag in SUPPORTED_LANGUAGES else default


@dataclass(frozen=True)
class ServiceConfig:
    api_key: Optional[str] = None
    base_url: str = DEFAULT_BASE_URL
    upstream_user: str = DEFAULT_USER
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES
    allowed_extensions: frozenset = DEFAULT_ALLOWED_EXTENSIONS
    default_language: str = DEFAULT_LANGUAGE
    disclaimer_enabled: bool = False
    log_json: bool = True
    log_level: str = "INFO"
    cors_origins: tuple = ("http://localhost:3000",)
    api_style: ApiStyle = field(init=False)

    def __post_init__(self):
        # Frozen, so the derived style has to be set through object.__setattr__
        object.__setattr__(self, "api_style", select_api_style(self.api_key))
        object.__setattr__(self, "base_url", self.base_url.rstrip("/"))
        object.__setattr__(
            self,
            "allowed_extensions",
            frozenset(ext.lower().lstrip(".") for ext in self.allowed_extensions),
        )
        object.__setattr__(self, "default_language", normalize_language(self.default_language, DEFAULT_LANGUAGE))

    @property
    def has_credential(self) -> bool:
        return bool(self.api_key)

    def masked_key(self) -> str:
        """First 8 characters of the credential, for diagnostics."""
        if not self.api_key:
            return ""
        return self.api_key[:8] + "..."


def load_config() -> ServiceConfig:
    """Build the process configuration from the environment."""
    load_dotenv()

    extensions = _env_list("ALLOWED_IMAGE_EXTENSIONS")
    origins = _env_list("CORS_ORIGINS")

    config = ServiceConfig(
        api_key=os.getenv("DIFY_API_KEY") or None,
        base_url=os.getenv("DIFY_BASE_URL", DEFAULT_BASE_URL),
        upstream_user=os.getenv("DIFY_USER", DEFAULT_USER),
        timeout_seconds=_env_float("ANALYSIS_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS),
        max_upload_bytes=_env_int("MAX_UPLOAD_BYTES", DEFAULT_MAX_UPLOAD_BYTES),
        allowed_extensions=frozenset(extensions) if extensions else DEFAULT_ALLOWED_EXTENSIONS,
        default_language=os.getenv("DEFAULT_LANGUAGE", DEFAULT_LANGUAGE),
        disclaimer_enabled=_env_bool("MEDICAL_DISCLAIMER_ENABLED", False),
        log_json=_env_bool("LOG_JSON", True),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        cors_origins=tuple(origins) if origins else ("http://localhost:3000",),
    )

    if not config.has_credential:
        logger.warning("DIFY_API_KEY is not set; analysis requests will be rejected.")
    else:
        logger.info(f"Upstream API style: {config.api_style.value} ({config.base_url})")
    return config

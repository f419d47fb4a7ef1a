from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# ──────────────────────────────────────────────
# Paths
# ──────────────────────────────────────────────
BASE_DIR = Path(__file__).resolve().parent.parent          # src/
MODELS_DIR = BASE_DIR / "models"
UPLOAD_DIR = BASE_DIR / "uploads"

# ──────────────────────────────────────────────
# Image pre-processing defaults
# ──────────────────────────────────────────────
IMAGE_SIZE: tuple[int, int] = (224, 224)

LOCAL_HOSTS: frozenset[str] = frozenset({"localhost", "0.0.0.0", "::", "::1"})


# ──────────────────────────────────────────────
# Settings (from environment variables / .env)
# ──────────────────────────────────────────────
class Settings(BaseSettings):
    """Application settings loaded from environment variables or .env file."""

    # Server settings
    host: str = "0.0.0.0"
    port: int = 3000

    # CORS settings (every origin allowed by default)
    cors_origins: str = "*"
    cors_allow_credentials: bool = False
    cors_allow_methods: str = "GET,POST,OPTIONS"
    cors_allow_headers: str = "*"

    # Model settings
    model_path: Path = MODELS_DIR / "keras_model.h5"
    labels_path: Path | None = None
    inference_timeout: float | None = 30.0

    # Upload settings
    upload_dir: Path = UPLOAD_DIR
    max_upload_size: int = 10 * 1024 * 1024  # 10 MB

    # Keep-alive settings (hosted platforms that suspend idle services)
    hosted_platform: str | None = Field(
        default=None,
        validation_alias=AliasChoices("hosted_platform", "render"),
    )
    public_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("public_url", "render_external_url"),
    )
    keepalive_initial_delay: float = 60.0
    keepalive_interval: float = 14 * 60.0

    # Application settings
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
        protected_namespaces=(),
    )

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins from comma-separated string."""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def cors_methods_list(self) -> list[str]:
        """Parse CORS methods from comma-separated string."""
        if self.cors_allow_methods == "*":
            return ["*"]
        return [method.strip() for method in self.cors_allow_methods.split(",")]

    @property
    def cors_headers_list(self) -> list[str]:
        """Parse CORS headers from comma-separated string."""
        if self.cors_allow_headers == "*":
            return ["*"]
        return [header.strip() for header in self.cors_allow_headers.split(",")]

    @property
    def labels_file(self) -> Path:
        """Label file path; defaults to ``labels.txt`` beside the model."""
        if self.labels_path is not None:
            return self.labels_path
        return self.model_path.with_name("labels.txt")

    @property
    def keepalive_enabled(self) -> bool:
        return bool(self.hosted_platform and self.hosted_platform.strip())


# Global settings instance
settings = Settings()

# Create upload directory if it doesn't exist
settings.upload_dir.mkdir(parents=True, exist_ok=True)

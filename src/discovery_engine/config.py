"""
Configuration module for the Discovery Service.

Loads environment variables and provides configuration singletons.
Uses pydantic for validation.
"""

from pydantic_settings import BaseSettings
from typing import Optional
import os


SUPPORTED_BACKENDS = ("memory", "firestore")


class Config(BaseSettings):
    """
    Application configuration loaded from environment variables.

    All values come from .env file or system environment.
    Type hints provide validation (pydantic converts types automatically).
    """

    # ============================================================
    # STORAGE CONFIGURATION
    # ============================================================
    STORAGE_BACKEND: str = "memory"
    """Which store adapters to wire: 'memory' (local/dev) or 'firestore'."""

    FIREBASE_PROJECT_ID: Optional[str] = None
    """Firebase project ID. Required when STORAGE_BACKEND=firestore."""

    GOOGLE_APPLICATION_CREDENTIALS: str = "/config/serviceAccountKey.json"
    """Path to Firebase service account JSON file."""

    STORE_MAX_RETRIES: int = 3
    """Bounded retries for session writes that lose a race. Default: 3."""

    # ============================================================
    # DISCOVERY CONFIGURATION
    # ============================================================
    DEFAULT_DISTANCE_KM: float = 50.0
    """Max distance applied when the caller sends no distance filter."""

    MAX_DISTANCE_KM: float = 500.0
    """Absolute ceiling for the distance filter. Larger values are clamped."""

    SKIP_THRESHOLD: int = 3
    """Skips after which a candidate is never shown to that swiper again."""

    DEFAULT_BATCH_SIZE: int = 20
    """Batch size when the caller sends no limit."""

    MIN_BATCH_SIZE: int = 1
    MAX_BATCH_SIZE: int = 50

    OVERFETCH_FACTOR: int = 2
    """Directory over-fetch multiplier to absorb distance filtering losses."""

    # ============================================================
    # SECURITY CONFIGURATION
    # ============================================================
    SERVICE_TOKEN: str = os.getenv("SERVICE_TOKEN", "")
    """Shared secret for authenticating requests from the upstream API layer."""

    # ============================================================
    # SERVER CONFIGURATION
    # ============================================================
    PORT: int = 8000
    """Port to run FastAPI server on. Default: 8000."""

    HOST: str = "0.0.0.0"
    """Host to bind to. 0.0.0.0 = accessible from network."""

    DEBUG: bool = False
    """Enable debug logging. Set True for development, False for production."""

    LOG_FILE: str = "logs/discovery.log"
    """Rotating log file path. Empty string disables file logging."""

    class Config:
        """Pydantic configuration."""
        env_file = ".env"  # Read from .env file
        case_sensitive = True  # Variable names are case-sensitive
        extra = "ignore"  # Ignore extra env vars not defined above


# ============================================================
# SINGLETON INSTANCE
# ============================================================
# Load config once at startup, reuse throughout app
config = Config()


# ============================================================
# VALIDATION AT STARTUP
# ============================================================
def validate_config() -> dict:
    """
    Validate that config values are consistent.

    Called at app startup to fail fast if config is incomplete.

    Returns:
        dict: Status of each checked area

    Raises:
        ValueError: If config is missing or inconsistent
    """
    errors = []

    if config.STORAGE_BACKEND not in SUPPORTED_BACKENDS:
        errors.append(
            f"STORAGE_BACKEND must be one of {', '.join(SUPPORTED_BACKENDS)}"
        )

    if config.STORAGE_BACKEND == "firestore" and not config.FIREBASE_PROJECT_ID:
        errors.append("FIREBASE_PROJECT_ID is required for the firestore backend")

    if not (
        1 <= config.MIN_BATCH_SIZE <= config.DEFAULT_BATCH_SIZE <= config.MAX_BATCH_SIZE
    ):
        errors.append(
            "Batch sizes must satisfy 1 <= MIN_BATCH_SIZE <= DEFAULT_BATCH_SIZE <= MAX_BATCH_SIZE"
        )

    if not 0 < config.DEFAULT_DISTANCE_KM <= config.MAX_DISTANCE_KM:
        errors.append("DEFAULT_DISTANCE_KM must be in (0, MAX_DISTANCE_KM]")

    if config.SKIP_THRESHOLD < 1:
        errors.append("SKIP_THRESHOLD must be at least 1")

    if config.OVERFETCH_FACTOR < 1:
        errors.append("OVERFETCH_FACTOR must be at least 1")

    if errors:
        raise ValueError("Configuration errors:\n" + "\n".join([f"  - {e}" for e in errors]))

    return {
        "storage": config.STORAGE_BACKEND,
        "firebase": "✓ Configured" if config.FIREBASE_PROJECT_ID else "✗ Not set",
        "auth": "✓ Token required" if config.SERVICE_TOKEN else "✗ Open",
        "batch": f"{config.MIN_BATCH_SIZE}-{config.MAX_BATCH_SIZE} (default {config.DEFAULT_BATCH_SIZE})",
    }


if __name__ == "__main__":
    """Allow testing config by running: python -m discovery_engine.config"""
    try:
        status = validate_config()
        print("✅ Configuration is valid!")
        print("\nConfiguration Status:")
        for key, value in status.items():
            print(f"  {key}: {value}")
    except ValueError as e:
        print(f"❌ Configuration error:\n{e}")
        exit(1)

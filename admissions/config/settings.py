"""
Application Settings.

All configuration comes from .env / environment variables.
"""

from functools import lru_cache
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Settings loaded from environment variables."""

    # --- App ---
    env: str = "development"
    debug: bool = True
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # --- Record store ---
    database_url: str = "sqlite:///admissions.db"

    # --- Blob storage ---
    blob_backend: str = "local"  # local | s3
    blob_local_root: str = "data/blobs"
    blob_public_base_url: str = "http://localhost:8000/files"
    s3_endpoint_url: str = "http://localhost:9000"
    s3_access_key: str = "minioadmin"
    s3_secret_key: str = "minioadmin"
    s3_bucket: str = "admissions-documents"
    s3_region: str = "us-east-1"

    # --- Local fallback ---
    fallback_dir: str = "data/fallback"

    # --- Autosave ---
    autosave_quiet_period_seconds: float = 1.5

    # --- Documents ---
    academic_documents_cap: int = 5
    max_document_size_mb: float = 10
    max_photo_size_mb: float = 5

    # --- Submission ---
    progress_tick_seconds: float = 0.5
    progress_tick_increment: int = 8
    progress_simulated_ceiling: int = 90
    finalize_settle_seconds: float = 0.5

    # --- Compression ---
    compression_enabled: bool = True
    compression_savings_notice_ratio: float = 0.10
    compression_large_threshold_mb: float = 2
    compression_medium_threshold_mb: float = 1
    compression_max_dimension_large: int = 800
    compression_max_dimension_medium: int = 1200
    compression_max_width: int = 1920
    compression_max_height: int = 1080
    compression_quality_large: float = 0.7
    compression_quality_medium: float = 0.8
    compression_quality_default: float = 0.85

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


@lru_cache
def get_settings() -> Settings:
    """Settings singleton."""
    return Settings()

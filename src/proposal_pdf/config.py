import os
from dataclasses import dataclass

from .conversion.adapters import DEFAULT_RENDERER_URL


def _flag(value: str) -> bool:
    return value.lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    pdfshift_api_key: str | None
    pdfshift_url: str
    storage_bucket: str | None
    firebase_project_id: str | None
    firebase_client_email: str | None
    firebase_private_key: str | None
    proposals_collection: str = "proposals"
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8080
    reload: bool = True


def load_settings() -> Settings:
    """Read service configuration from the environment."""
    return Settings(
        pdfshift_api_key=os.getenv("PDFSHIFT_API_KEY") or None,
        pdfshift_url=os.getenv("PDFSHIFT_URL", DEFAULT_RENDERER_URL),
        storage_bucket=os.getenv("PDF_STORAGE_BUCKET") or os.getenv("FIREBASE_STORAGE_BUCKET") or None,
        firebase_project_id=os.getenv("FIREBASE_PROJECT_ID") or None,
        firebase_client_email=os.getenv("FIREBASE_CLIENT_EMAIL") or None,
        firebase_private_key=os.getenv("FIREBASE_PRIVATE_KEY") or None,
        proposals_collection=os.getenv("PROPOSALS_COLLECTION", "proposals"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8080")),
        # Enable reload in dev unless explicitly disabled
        reload=_flag(os.getenv("RELOAD", "true")),
    )

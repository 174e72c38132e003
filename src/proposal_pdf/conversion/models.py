from dataclasses import dataclass
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

MAX_UPLOAD_BYTES = 25_000_000
GRANT_TTL_SECONDS = 5 * 60
GZIP_BASE64 = "gzip-base64"


class ConversionStatus:
    READY = "ready"
    ERROR = "error"


class UploadUrlRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    content_length: int = Field(alias="contentLength", strict=True, ge=1, le=MAX_UPLOAD_BYTES)
    content_type: str | None = Field(default=None, alias="contentType")


class ConversionRequest(BaseModel):
    """Body of a conversion request.

    Content arrives either inline (``html`` or compressed ``data``) or as a
    reference to an object the client uploaded with an :class:`UploadGrant`.
    """

    model_config = ConfigDict(populate_by_name=True)

    html: str | None = None
    css: str | list[str] | None = None
    options: dict[str, Any] = Field(default_factory=dict)
    filename: str | None = None
    storage_path: str | None = Field(default=None, alias="storagePath")
    encoding: str | None = None
    data: str | None = None
    origin: str | None = None
    debug: bool = False

    @model_validator(mode="after")
    def _single_content_source(self) -> "ConversionRequest":
        if self.encoding is not None and self.encoding != GZIP_BASE64:
            raise ValueError(f"unsupported encoding {self.encoding!r}; expected {GZIP_BASE64!r}")
        compressed = bool(self.data) and self.encoding == GZIP_BASE64
        inline = bool(self.html and self.html.strip()) or compressed
        if inline and self.storage_path:
            raise ValueError("provide inline content or storagePath, not both")
        if not inline and not self.storage_path:
            raise ValueError("missing HTML content to convert")
        return self


@dataclass(frozen=True)
class UploadGrant:
    upload_url: str
    storage_path: str
    expires_at: datetime
    max_bytes: int = MAX_UPLOAD_BYTES

    def to_body(self) -> dict[str, object]:
        return {
            "uploadUrl": self.upload_url,
            "storagePath": self.storage_path,
            "expiresAt": int(self.expires_at.timestamp() * 1000),
            "maxBytes": self.max_bytes,
        }


@dataclass(frozen=True)
class ConversionResult:
    content: bytes
    filename: str
    media_type: str = "application/pdf"
    extension: str = "pdf"

    @property
    def attachment_name(self) -> str:
        return f"{self.filename}.{self.extension}"


@dataclass(frozen=True)
class ProposalConversionStatus:
    status: str
    error: str | None = None
    # Left unset by the service; the document store assigns it on write.
    last_attempt_at: datetime | None = None

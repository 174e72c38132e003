from datetime import datetime
from typing import Protocol

from .models import ProposalConversionStatus


class ObjectStorageGateway(Protocol):
    """Blocking object-storage operations; the service offloads them to threads."""

    def signed_write_url(self, path: str, content_type: str, expires_at: datetime) -> str:
        ...

    def exists(self, path: str) -> bool:
        ...

    def download(self, path: str) -> bytes:
        ...

    def delete(self, path: str) -> None:
        """Delete the object at path. A missing object is not an error."""


class ProposalStoreGateway(Protocol):
    def get_proposal(self, proposal_id: str) -> dict[str, object] | None:
        ...

    def update_conversion_status(self, proposal_id: str, status: ProposalConversionStatus) -> None:
        ...


class RendererGateway(Protocol):
    def render(self, payload: dict[str, object]) -> bytes:
        """Send one rendering request and return the PDF bytes.

        Raises UpstreamError for non-success responses and TransportError when
        the service could not be reached or answered with an unreadable body.
        """


class AssetGateway(Protocol):
    def fetch(self, url: str) -> tuple[bytes, str | None] | None:
        """Return (body, content type) or None when the asset is unavailable."""

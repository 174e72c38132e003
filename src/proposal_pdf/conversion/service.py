import asyncio
import base64
import binascii
import gzip
import logging
import time
import uuid
import zlib
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator

from . import markup
from .errors import (
    ConversionError,
    CorruptPayloadError,
    ExpiredPayloadError,
    InvalidRequestError,
    NotFoundError,
    UnconfiguredError,
)
from .interfaces import AssetGateway, ObjectStorageGateway, ProposalStoreGateway, RendererGateway
from .models import (
    GRANT_TTL_SECONDS,
    GZIP_BASE64,
    MAX_UPLOAD_BYTES,
    ConversionRequest,
    ConversionResult,
    ConversionStatus,
    ProposalConversionStatus,
    UploadGrant,
)

logger = logging.getLogger(__name__)

DEFAULT_UPLOAD_CONTENT_TYPE = "application/gzip"
_DECOMPRESS_ERRORS = (OSError, EOFError, zlib.error, UnicodeDecodeError)


def _gunzip_text(raw: bytes) -> str:
    return gzip.decompress(raw).decode("utf-8")


class ProposalPdfService:
    """Turns proposal HTML into a PDF and records the outcome on the proposal.

    Framework-agnostic: the HTTP layer hands over validated requests and maps
    :class:`ConversionError` to responses. Gateways are blocking; every call
    to one is offloaded to a worker thread.
    """

    def __init__(
        self,
        storage: ObjectStorageGateway,
        proposals: ProposalStoreGateway,
        renderer: RendererGateway,
        assets: AssetGateway | None = None,
    ) -> None:
        self._storage = storage
        self._proposals = proposals
        self._renderer = renderer
        self._assets = assets

    async def _require_proposal(self, proposal_id: str) -> dict[str, object]:
        proposal = await asyncio.to_thread(self._proposals.get_proposal, proposal_id)
        if proposal is None:
            raise NotFoundError("Proposal not found")
        return proposal

    # -- capability issuer ----------------------------------------------------

    async def issue_upload_grant(
        self, proposal_id: str, content_length: int, content_type: str | None = None
    ) -> UploadGrant:
        if isinstance(content_length, bool) or not isinstance(content_length, int):
            raise InvalidRequestError("contentLength must be an integer")
        if not 1 <= content_length <= MAX_UPLOAD_BYTES:
            raise InvalidRequestError(
                f"contentLength must be between 1 and {MAX_UPLOAD_BYTES} bytes",
                details={"maxBytes": MAX_UPLOAD_BYTES},
            )
        await self._require_proposal(proposal_id)

        storage_path = f"pdf-html/{proposal_id}/{int(time.time() * 1000)}-{uuid.uuid4()}.html.gz"
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=GRANT_TTL_SECONDS)
        try:
            upload_url = await asyncio.to_thread(
                self._storage.signed_write_url,
                storage_path,
                content_type or DEFAULT_UPLOAD_CONTENT_TYPE,
                expires_at,
            )
        except UnconfiguredError:
            logger.error("upload grant refused, storage unconfigured proposal=%s", proposal_id)
            raise
        except Exception as e:
            logger.exception("signed upload url failed proposal=%s", proposal_id)
            raise UnconfiguredError("Failed to prepare upload") from e

        logger.info("upload grant issued proposal=%s path=%s bytes=%d", proposal_id, storage_path, content_length)
        return UploadGrant(upload_url=upload_url, storage_path=storage_path, expires_at=expires_at)

    # -- payload relay ---------------------------------------------------------

    async def resolve_payload(self, request: ConversionRequest) -> ConversionRequest:
        """Replace a storage reference with the decompressed HTML it points to."""
        path = request.storage_path
        if not path:
            return request

        if not await asyncio.to_thread(self._storage.exists, path):
            raise ExpiredPayloadError(
                "Uploaded payload not found; the upload window may have expired. Request a new upload URL."
            )
        try:
            raw = await asyncio.to_thread(self._storage.download, path)
        except ConversionError:
            raise
        except Exception as e:
            logger.warning("payload download failed path=%s error=%s", path, e)
            raise CorruptPayloadError("Failed to read uploaded payload") from e
        try:
            html = _gunzip_text(raw)
        except _DECOMPRESS_ERRORS as e:
            logger.warning("payload decompression failed path=%s error=%s", path, e)
            raise CorruptPayloadError("Uploaded payload is not valid gzip-compressed UTF-8 HTML") from e

        return request.model_copy(update={"html": html, "storage_path": None, "data": None, "encoding": None})

    # -- conversion adapter ----------------------------------------------------

    def _inline_html(self, payload: ConversionRequest) -> str:
        html = payload.html or ""
        if not html.strip() and payload.data and payload.encoding == GZIP_BASE64:
            try:
                html = _gunzip_text(base64.b64decode(payload.data, validate=True))
            except (binascii.Error, *_DECOMPRESS_ERRORS) as e:
                raise InvalidRequestError("Failed to decode compressed HTML payload") from e
        if not html.strip():
            raise InvalidRequestError("Missing HTML content to convert")
        return html

    async def _inline_images(self, html: str, origin: str | None) -> str:
        sources = markup.inlineable_images(html, origin)
        if not sources or self._assets is None:
            return html

        async def _data_uri(url: str) -> str | None:
            fetched = await asyncio.to_thread(self._assets.fetch, url)
            if fetched is None:
                return None
            body, content_type = fetched
            mime = content_type or markup.guess_mime_type(url)
            return f"data:{mime};base64,{base64.b64encode(body).decode('ascii')}"

        uris = await asyncio.gather(*(_data_uri(url) for url in sources.values()))
        replacements = {src: uri for src, uri in zip(sources, uris) if uri}
        return markup.replace_image_sources(html, replacements)

    async def convert(self, payload: ConversionRequest, filename: str | None = None) -> ConversionResult:
        """Render an inline payload; the renderer is called once, never retried."""
        if payload.storage_path:
            raise InvalidRequestError("Payload must be resolved before conversion")
        safe_name = markup.sanitize_filename(filename if filename is not None else payload.filename)

        html = markup.strip_scripts(self._inline_html(payload))
        html = await self._inline_images(html, payload.origin)

        if payload.debug:
            return ConversionResult(
                content=html.encode("utf-8"),
                filename=safe_name,
                media_type="text/html; charset=utf-8",
                extension="html",
            )

        body = markup.build_render_payload(html, payload.css, payload.options)
        pdf = await asyncio.to_thread(self._renderer.render, body)
        return ConversionResult(content=pdf, filename=safe_name)

    # -- status recorder -------------------------------------------------------

    async def record_status(self, proposal_id: str, status: str, error: str | None = None) -> bool:
        """Overwrite the proposal's conversion status. Returns False if the write failed."""
        try:
            await asyncio.to_thread(
                self._proposals.update_conversion_status,
                proposal_id,
                ProposalConversionStatus(status=status, error=error),
            )
        except Exception as e:
            logger.error("status update failed proposal=%s status=%s error=%s", proposal_id, status, e)
            return False
        return True

    # -- cleanup coordinator ---------------------------------------------------

    async def discard(self, storage_path: str) -> None:
        """Delete a consumed upload. Missing objects are fine; failures are only logged."""
        try:
            await asyncio.to_thread(self._storage.delete, storage_path)
        except Exception as e:
            logger.warning("temporary payload not deleted path=%s error=%s", storage_path, e)

    @asynccontextmanager
    async def temporary_object(self, storage_path: str | None) -> AsyncIterator[None]:
        try:
            yield
        finally:
            if storage_path:
                # Shielded: a dropped client connection must not abort the delete.
                await asyncio.shield(self.discard(storage_path))

    # -- pipeline --------------------------------------------------------------

    async def generate_pdf(self, proposal_id: str, request: ConversionRequest) -> ConversionResult:
        proposal = await self._require_proposal(proposal_id)
        filename = request.filename or markup.build_proposal_filename(proposal)

        async with self.temporary_object(request.storage_path):
            try:
                payload = await self.resolve_payload(request)
            except ConversionError as e:
                logger.warning(
                    "payload resolution failed proposal=%s kind=%s cause=%s", proposal_id, e.kind, e.message
                )
                raise

            try:
                result = await self.convert(payload, filename=filename)
            except ConversionError as e:
                logger.warning(
                    "conversion failed proposal=%s kind=%s status=%d cause=%s",
                    proposal_id,
                    e.kind,
                    e.status_code,
                    e.message,
                )
                await self.record_status(proposal_id, ConversionStatus.ERROR, e.message)
                raise
            except Exception as e:
                # Traceback is logged once, by the HTTP layer
                logger.error("conversion crashed proposal=%s cause=%s", proposal_id, e)
                await self.record_status(proposal_id, ConversionStatus.ERROR, str(e) or "Failed to generate PDF")
                raise

            await self.record_status(proposal_id, ConversionStatus.READY)

        logger.info("conversion succeeded proposal=%s file=%s bytes=%d", proposal_id, result.attachment_name, len(result.content))
        return result

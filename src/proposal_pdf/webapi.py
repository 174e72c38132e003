import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response

from proposal_pdf import __version__
from proposal_pdf.config import Settings, load_settings
from proposal_pdf.conversion import (
    ConversionError,
    ConversionRequest,
    ProposalPdfService,
    UploadUrlRequest,
)
from proposal_pdf.conversion.adapters import (
    FirestoreProposalStore,
    GcsObjectStorage,
    PdfShiftRenderer,
    RequestsAssetFetcher,
    service_account_credentials,
)

logger = logging.getLogger(__name__)


def build_service(settings: Settings) -> ProposalPdfService:
    """Compose the service from explicitly constructed collaborators."""
    credentials = service_account_credentials(
        settings.firebase_project_id,
        settings.firebase_client_email,
        settings.firebase_private_key,
    )
    storage = GcsObjectStorage(
        settings.storage_bucket,
        project=settings.firebase_project_id,
        credentials=credentials,
    )
    proposals = FirestoreProposalStore(
        collection=settings.proposals_collection,
        project=settings.firebase_project_id,
        credentials=credentials,
    )
    renderer = PdfShiftRenderer(settings.pdfshift_api_key, url=settings.pdfshift_url)
    return ProposalPdfService(storage=storage, proposals=proposals, renderer=renderer, assets=RequestsAssetFetcher())


def get_service(request: Request) -> ProposalPdfService:
    return request.app.state.service


async def _conversion_error(request: Request, exc: ConversionError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


async def _invalid_body(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.warning("invalid request body path=%s errors=%d", request.url.path, len(exc.errors()))
    details = [
        {"loc": [str(part) for part in err.get("loc", ())], "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Invalid request body", "details": details},
    )


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    if app.state.service is None:
        app.state.service = build_service(load_settings())
    yield


def create_app(service: ProposalPdfService | None = None) -> FastAPI:
    app = FastAPI(
        lifespan=_lifespan,
        title="Proposal PDF Service",
        version=__version__,
        description=(
            "Converts proposal HTML into PDF documents, with signed upload URLs "
            "for payloads too large to send inline."
        ),
    )
    app.state.service = service
    app.add_exception_handler(ConversionError, _conversion_error)
    app.add_exception_handler(RequestValidationError, _invalid_body)

    @app.get("/health")
    def health() -> dict[str, str]:
        """Basic health check endpoint."""
        return {"status": "ok"}

    @app.post("/proposals/{proposal_id}/pdf/upload-url")
    async def create_upload_url(
        proposal_id: str,
        body: UploadUrlRequest,
        svc: ProposalPdfService = Depends(get_service),
    ) -> JSONResponse:
        """Issue a five-minute signed PUT URL for a gzip-compressed proposal payload."""
        grant = await svc.issue_upload_grant(proposal_id, body.content_length, body.content_type)
        return JSONResponse(content=grant.to_body())

    @app.post("/proposals/{proposal_id}/pdf")
    async def create_pdf(
        proposal_id: str,
        body: ConversionRequest,
        svc: ProposalPdfService = Depends(get_service),
    ) -> Response:
        """Convert inline or previously uploaded HTML and stream the PDF back as an attachment."""
        try:
            result = await svc.generate_pdf(proposal_id, body)
        except ConversionError:
            raise
        except Exception as e:
            logger.exception("pdf generation failed proposal=%s", proposal_id)
            raise ConversionError("Failed to generate PDF") from e

        headers = {"Content-Disposition": f'attachment; filename="{result.attachment_name}"'}
        return Response(content=result.content, media_type=result.media_type, headers=headers)

    return app


app = create_app()


def run() -> None:
    """Run a development ASGI server using uvicorn.

    Exposes the app at host:port (default 0.0.0.0:8080). Set PORT env var to override.
    """
    import uvicorn

    settings = load_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run("proposal_pdf.webapi:app", host=settings.host, port=settings.port, reload=settings.reload)


if __name__ == "__main__":
    run()

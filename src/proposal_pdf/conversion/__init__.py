"""
Domain layer for proposal PDF generation.
Provides gateway interfaces, SDK-backed adapters and a service that runs the
upload-grant and conversion pipeline, so the HTTP front-end stays thin.
"""

from .errors import (
    ConversionError,
    CorruptPayloadError,
    ExpiredPayloadError,
    InvalidRequestError,
    NotFoundError,
    TransportError,
    UnconfiguredError,
    UpstreamError,
)
from .interfaces import AssetGateway, ObjectStorageGateway, ProposalStoreGateway, RendererGateway
from .models import ConversionRequest, ConversionResult, ConversionStatus, UploadGrant, UploadUrlRequest
from .service import ProposalPdfService

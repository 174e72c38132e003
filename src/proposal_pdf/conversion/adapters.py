import json
import logging
from datetime import datetime

import requests
from google.api_core import exceptions as gcloud_exceptions
from google.auth.exceptions import DefaultCredentialsError
from google.cloud import firestore, storage
from google.oauth2 import service_account

from .errors import TransportError, UnconfiguredError, UpstreamError
from .interfaces import AssetGateway, ObjectStorageGateway, ProposalStoreGateway, RendererGateway
from .models import ConversionStatus, ProposalConversionStatus

logger = logging.getLogger(__name__)

DEFAULT_RENDERER_URL = "https://api.pdfshift.io/v3/convert/pdf"


def service_account_credentials(
    project_id: str | None, client_email: str | None, private_key: str | None
) -> service_account.Credentials | None:
    """Build credentials from the Firebase admin env triple, or None to use ADC."""
    if not (project_id and client_email and private_key):
        return None
    info = {
        "type": "service_account",
        "project_id": project_id,
        "client_email": client_email,
        # Keys pasted into env files usually carry literal "\n" sequences
        "private_key": private_key.replace("\\n", "\n"),
        "token_uri": "https://oauth2.googleapis.com/token",
    }
    return service_account.Credentials.from_service_account_info(info)


class GcsObjectStorage(ObjectStorageGateway):
    def __init__(
        self,
        bucket_name: str | None,
        *,
        client: storage.Client | None = None,
        project: str | None = None,
        credentials: service_account.Credentials | None = None,
    ) -> None:
        self._bucket_name = bucket_name
        self._client = client
        self._project = project
        self._credentials = credentials

    def _bucket(self) -> storage.Bucket:
        if not self._bucket_name:
            raise UnconfiguredError("PDF storage bucket is not configured")
        if self._client is None:
            try:
                self._client = storage.Client(project=self._project, credentials=self._credentials)
            except DefaultCredentialsError as e:
                raise UnconfiguredError("Cloud Storage credentials are not configured") from e
        return self._client.bucket(self._bucket_name)

    def signed_write_url(self, path: str, content_type: str, expires_at: datetime) -> str:
        blob = self._bucket().blob(path)
        return blob.generate_signed_url(
            version="v4",
            expiration=expires_at,
            method="PUT",
            content_type=content_type,
        )

    def exists(self, path: str) -> bool:
        return bool(self._bucket().blob(path).exists())

    def download(self, path: str) -> bytes:
        return self._bucket().blob(path).download_as_bytes()

    def delete(self, path: str) -> None:
        try:
            self._bucket().blob(path).delete()
        except gcloud_exceptions.NotFound:
            logger.debug("delete skipped, object already gone path=%s", path)


class FirestoreProposalStore(ProposalStoreGateway):
    def __init__(
        self,
        *,
        collection: str = "proposals",
        client: firestore.Client | None = None,
        project: str | None = None,
        credentials: service_account.Credentials | None = None,
    ) -> None:
        self._collection = collection
        self._client = client
        self._project = project
        self._credentials = credentials

    def _document(self, proposal_id: str) -> firestore.DocumentReference:
        if self._client is None:
            try:
                self._client = firestore.Client(project=self._project, credentials=self._credentials)
            except DefaultCredentialsError as e:
                raise UnconfiguredError("Firestore credentials are not configured") from e
        return self._client.collection(self._collection).document(proposal_id)

    def get_proposal(self, proposal_id: str) -> dict[str, object] | None:
        snapshot = self._document(proposal_id).get()
        if not snapshot.exists:
            return None
        return snapshot.to_dict() or {}

    def update_conversion_status(self, proposal_id: str, status: ProposalConversionStatus) -> None:
        fields: dict[str, object] = {
            "pdf": {
                "status": status.status,
                "url": None,
                "lastGeneratedAt": firestore.SERVER_TIMESTAMP,
                "error": status.error,
            }
        }
        if status.status == ConversionStatus.READY:
            fields["downloadCount"] = firestore.Increment(1)
        # update() touches only the named fields; concurrent writers race and the last one wins
        self._document(proposal_id).update(fields)


def _upstream_error(status_code: int, body: bytes) -> UpstreamError:
    message = "Failed to generate PDF via PDFShift."
    text = body.decode("utf-8", errors="replace")
    details: object = text or None
    try:
        parsed = json.loads(text)
    except ValueError:
        parsed = None
    else:
        details = parsed
    if isinstance(parsed, dict):
        for key in ("error", "message"):
            if isinstance(parsed.get(key), str) and parsed[key]:
                message = parsed[key]
                break
    return UpstreamError(message, status_code=status_code, details=details)


class PdfShiftRenderer(RendererGateway):
    def __init__(self, api_key: str | None, *, url: str = DEFAULT_RENDERER_URL, session: requests.Session | None = None) -> None:
        self._api_key = api_key
        self._url = url
        self._session = session or requests.Session()

    def render(self, payload: dict[str, object]) -> bytes:
        if not self._api_key:
            raise UnconfiguredError("PDFShift API key is not configured")
        # TODO: agree a timeout and retry budget for PDFShift with ops; requests waits indefinitely by default
        try:
            response = self._session.post(
                self._url,
                json=payload,
                headers={"X-API-Key": self._api_key},
            )
            body = response.content
        except requests.RequestException as e:
            raise TransportError(f"Could not reach PDF renderer: {e}") from e

        if not response.ok:
            raise _upstream_error(response.status_code, body)
        if not body:
            raise TransportError("PDF renderer returned an empty document")
        return body


class RequestsAssetFetcher(AssetGateway):
    def __init__(self, *, session: requests.Session | None = None, timeout: float = 30) -> None:
        self._session = session or requests.Session()
        self._timeout = timeout

    def fetch(self, url: str) -> tuple[bytes, str | None] | None:
        try:
            resp = self._session.get(url, timeout=self._timeout)
        except requests.RequestException as e:
            logger.warning("asset fetch failed url=%s error=%s", url, e)
            return None
        if not resp.ok:
            return None
        return resp.content, resp.headers.get("content-type")

"""Shared fakes and fixtures for the proposal PDF service tests."""

import gzip
from datetime import datetime, timezone

import pytest

from proposal_pdf.conversion import ProposalPdfService
from proposal_pdf.conversion.errors import UnconfiguredError
from proposal_pdf.conversion.models import ConversionStatus, ProposalConversionStatus

FAKE_PDF = b"%PDF-1.7\n%fake\n"


class FakeObjectStorage:
    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.signed: list[tuple[str, str, datetime]] = []
        self.deleted: list[str] = []
        self.download_error: Exception | None = None
        self.delete_error: Exception | None = None
        self.sign_error: Exception | None = None

    def put_gzip(self, path: str, text: str) -> None:
        self.objects[path] = gzip.compress(text.encode("utf-8"))

    def signed_write_url(self, path: str, content_type: str, expires_at: datetime) -> str:
        if self.sign_error is not None:
            raise self.sign_error
        self.signed.append((path, content_type, expires_at))
        return f"https://storage.example.test/{path}?X-Goog-Signature=abc"

    def exists(self, path: str) -> bool:
        return path in self.objects

    def download(self, path: str) -> bytes:
        if self.download_error is not None:
            raise self.download_error
        return self.objects[path]

    def delete(self, path: str) -> None:
        self.deleted.append(path)
        if self.delete_error is not None:
            raise self.delete_error
        self.objects.pop(path, None)


class UnconfiguredStorage(FakeObjectStorage):
    def signed_write_url(self, path: str, content_type: str, expires_at: datetime) -> str:
        raise UnconfiguredError("PDF storage bucket is not configured")


class FakeProposalStore:
    def __init__(self, records: dict[str, dict[str, object]] | None = None) -> None:
        self.records = records if records is not None else {}
        self.updates: list[tuple[str, ProposalConversionStatus]] = []
        self.update_error: Exception | None = None

    def get_proposal(self, proposal_id: str) -> dict[str, object] | None:
        return self.records.get(proposal_id)

    def update_conversion_status(self, proposal_id: str, status: ProposalConversionStatus) -> None:
        if self.update_error is not None:
            raise self.update_error
        self.updates.append((proposal_id, status))
        record = self.records[proposal_id]
        record["pdf"] = {
            "status": status.status,
            "url": None,
            "lastGeneratedAt": datetime.now(timezone.utc),
            "error": status.error,
        }
        if status.status == ConversionStatus.READY:
            record["downloadCount"] = int(record.get("downloadCount", 0)) + 1


class FakeRenderer:
    def __init__(self, result: bytes = FAKE_PDF) -> None:
        self.result = result
        self.error: Exception | None = None
        self.payloads: list[dict[str, object]] = []

    def render(self, payload: dict[str, object]) -> bytes:
        self.payloads.append(payload)
        if self.error is not None:
            raise self.error
        return self.result


class FakeAssets:
    def __init__(self, assets: dict[str, tuple[bytes, str | None]] | None = None) -> None:
        self.assets = assets or {}
        self.requested: list[str] = []

    def fetch(self, url: str) -> tuple[bytes, str | None] | None:
        self.requested.append(url)
        return self.assets.get(url)


@pytest.fixture
def storage():
    return FakeObjectStorage()


@pytest.fixture
def proposals():
    return FakeProposalStore(
        {
            "p1": {
                "metadata": {
                    "customerName": "Acme Hotels",
                    "solutionType": "Cel-Fi",
                    "numberOfNetworks": 2,
                },
            },
        }
    )


@pytest.fixture
def renderer():
    return FakeRenderer()


@pytest.fixture
def assets():
    return FakeAssets()


@pytest.fixture
def service(storage, proposals, renderer, assets):
    return ProposalPdfService(storage=storage, proposals=proposals, renderer=renderer, assets=assets)

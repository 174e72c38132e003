"""HTTP-level tests for the FastAPI front-end with fake collaborators."""

import gzip
import logging

import pytest
from fastapi.testclient import TestClient

from proposal_pdf.conversion import ProposalPdfService
from proposal_pdf.conversion.errors import UpstreamError
from proposal_pdf.webapi import create_app

from conftest import FAKE_PDF, UnconfiguredStorage


@pytest.fixture
def client(service):
    return TestClient(create_app(service))


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_upload_url_issued(client, storage):
    resp = client.post("/proposals/p1/pdf/upload-url", json={"contentLength": 1200, "contentType": "application/gzip"})

    assert resp.status_code == 200
    body = resp.json()
    assert set(body) == {"uploadUrl", "storagePath", "expiresAt", "maxBytes"}
    assert body["storagePath"].startswith("pdf-html/p1/")
    assert body["maxBytes"] == 25_000_000
    assert isinstance(body["expiresAt"], int)
    assert storage.signed[0][0] == body["storagePath"]


@pytest.mark.parametrize(
    "payload",
    [{"contentLength": 0}, {"contentLength": 25_000_001}, {"contentLength": "10"}, {"contentLength": 1.5}, {}],
)
def test_upload_url_invalid_body(client, storage, payload):
    resp = client.post("/proposals/p1/pdf/upload-url", json=payload)

    assert resp.status_code == 400
    assert resp.json()["error"] == "Invalid request body"
    assert storage.signed == []


def test_upload_url_unknown_proposal(client):
    resp = client.post("/proposals/nope/pdf/upload-url", json={"contentLength": 10})
    assert resp.status_code == 404
    assert resp.json() == {"error": "Proposal not found"}


def test_upload_url_unconfigured_storage(proposals, renderer):
    svc = ProposalPdfService(storage=UnconfiguredStorage(), proposals=proposals, renderer=renderer)
    resp = TestClient(create_app(svc)).post("/proposals/p1/pdf/upload-url", json={"contentLength": 10})

    assert resp.status_code == 500
    assert resp.json() == {"error": "PDF storage bucket is not configured"}


def test_pdf_from_uploaded_payload(client, storage, proposals):
    storage.objects["p1/abc.html.gz"] = gzip.compress(b"<h1>Hi</h1>")

    resp = client.post("/proposals/p1/pdf", json={"storagePath": "p1/abc.html.gz", "filename": "f"})

    assert resp.status_code == 200
    assert resp.content == FAKE_PDF
    assert resp.headers["content-type"] == "application/pdf"
    assert resp.headers["content-disposition"] == 'attachment; filename="f.pdf"'
    assert proposals.records["p1"]["pdf"]["status"] == "ready"
    assert proposals.records["p1"]["pdf"]["error"] is None
    assert storage.deleted == ["p1/abc.html.gz"]


def test_pdf_upstream_rejection_passthrough(client, proposals, renderer):
    renderer.error = UpstreamError("bad css", status_code=422, details={"message": "bad css"})

    resp = client.post("/proposals/p1/pdf", json={"html": "<p>x</p>", "css": "h1 {"})

    assert resp.status_code == 422
    assert resp.json() == {"error": "bad css", "details": {"message": "bad css"}}
    assert proposals.records["p1"]["pdf"]["status"] == "error"
    assert proposals.records["p1"]["pdf"]["error"] == "bad css"


def test_pdf_expired_upload(client, storage):
    resp = client.post("/proposals/p1/pdf", json={"storagePath": "p1/lapsed.html.gz"})

    assert resp.status_code == 410
    assert "expired" in resp.json()["error"]
    assert storage.deleted == ["p1/lapsed.html.gz"]


@pytest.mark.parametrize(
    "payload",
    [
        {"html": "<p>x</p>", "storagePath": "p1/abc.html.gz"},
        {"filename": "f"},
        {"html": "   "},
        {"html": "<p>x</p>", "options": "landscape"},
        {"data": "PGgxPkhpPC9oMT4="},
        {"data": "PGgxPkhpPC9oMT4=", "encoding": "base64"},
        {"html": "<p>x</p>", "encoding": "brotli"},
    ],
)
def test_pdf_invalid_body_has_no_side_effects(client, proposals, renderer, storage, payload):
    resp = client.post("/proposals/p1/pdf", json=payload)

    assert resp.status_code == 400
    assert resp.json()["error"] == "Invalid request body"
    assert proposals.updates == []
    assert renderer.payloads == []
    assert storage.deleted == []


def test_pdf_unknown_proposal(client):
    resp = client.post("/proposals/missing/pdf", json={"html": "<p>x</p>"})
    assert resp.status_code == 404


def test_pdf_unexpected_failure_is_generic_500(client, proposals, renderer, caplog):
    renderer.error = RuntimeError("kaboom")

    with caplog.at_level(logging.INFO, logger="proposal_pdf"):
        resp = client.post("/proposals/p1/pdf", json={"html": "<p>x</p>"})

    assert resp.status_code == 500
    assert resp.json() == {"error": "Failed to generate PDF"}
    assert proposals.records["p1"]["pdf"]["error"] == "kaboom"
    assert len([r for r in caplog.records if r.exc_info]) == 1


def test_pdf_debug_preview(client, renderer):
    resp = client.post("/proposals/p1/pdf", json={"html": "<p>x</p>", "filename": "f", "debug": True})

    assert resp.status_code == 200
    assert resp.headers["content-disposition"] == 'attachment; filename="f.html"'
    assert resp.text == "<p>x</p>"
    assert renderer.payloads == []


def test_pdf_ignores_unknown_fields(client, renderer):
    resp = client.post(
        "/proposals/p1/pdf",
        json={"html": "<p>x</p>", "diagnostics": {"rawBytes": 10, "compressedBytes": 5}},
    )
    assert resp.status_code == 200
    assert len(renderer.payloads) == 1

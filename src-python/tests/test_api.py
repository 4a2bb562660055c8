"""Integration tests for the review API.

Uses httpx + ASGITransport to hit the FastAPI app without a real server.
"""

from __future__ import annotations

import fitz
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from saferedact.api.server import app
from saferedact.core.redaction.docx_redactor import extract_docx_text

CONTACT = "Contact: john@example.com, SSN 123-45-6789"
DOCX_MEDIA = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


@pytest_asyncio.fixture
async def client():
    """Async HTTP client for testing FastAPI endpoints."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


async def _upload(client: AsyncClient, name: str, data: bytes, media: str):
    return await client.post("/api/jobs", files={"file": (name, data, media)})


# ───────────────────────── Health ─────────────────────────

class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, client: AsyncClient):
        resp = await client.get("/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "ok"
        assert body["classifier_ready"] is False


# ───────────────────────── Upload ─────────────────────────

class TestUpload:
    @pytest.mark.asyncio
    async def test_unsupported_extension(self, client: AsyncClient):
        resp = await _upload(client, "notes.txt", b"hello", "text/plain")
        assert resp.status_code == 400
        assert "Unsupported" in resp.json()["detail"]

    @pytest.mark.asyncio
    async def test_corrupt_pdf(self, client: AsyncClient):
        resp = await _upload(client, "broken.pdf", b"not a pdf at all", "application/pdf")
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_missing_job(self, client: AsyncClient):
        resp = await client.get("/api/jobs/no-such-id")
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_pdf_detection(self, client: AsyncClient, make_pdf):
        resp = await _upload(client, "contact.pdf", make_pdf([CONTACT]), "application/pdf")
        assert resp.status_code == 200
        body = resp.json()
        assert body["kind"] == "pdf"
        assert body["page_count"] == 1
        assert {e["entity_type"] for e in body["entities"]} == {"EMAIL", "SSN"}
        assert all(e["status"] == "pending" for e in body["entities"])

        again = await client.get(f"/api/jobs/{body['job_id']}")
        assert again.status_code == 200
        assert len(again.json()["entities"]) == 2


# ───────────────────────── Review + redact ─────────────────────────

class TestRedact:
    @pytest.mark.asyncio
    async def test_pdf_confirm_and_redact(self, client: AsyncClient, make_pdf):
        job = (await _upload(client, "contact.pdf", make_pdf([CONTACT]), "application/pdf")).json()
        job_id = job["job_id"]

        resp = await client.post(f"/api/jobs/{job_id}/confirm", json={"ids": []})
        assert resp.status_code == 200
        assert len(resp.json()["updated"]) == 2

        resp = await client.post(f"/api/jobs/{job_id}/redact")
        assert resp.status_code == 200
        assert resp.headers["content-type"] == "application/pdf"
        assert resp.headers["x-redacted-count"] == "2"
        assert "contact_redacted.pdf" in resp.headers["content-disposition"]

        with fitz.open(stream=resp.content, filetype="pdf") as doc:
            text = doc[0].get_text()
        assert "john@example.com" not in text
        assert "123-45-6789" not in text

    @pytest.mark.asyncio
    async def test_reject_then_redact_partial(self, client: AsyncClient, make_pdf):
        job = (await _upload(client, "contact.pdf", make_pdf([CONTACT]), "application/pdf")).json()
        job_id = job["job_id"]
        ssn = next(e for e in job["entities"] if e["entity_type"] == "SSN")

        resp = await client.post(f"/api/jobs/{job_id}/reject", json={"ids": [ssn["id"]]})
        assert resp.json()["updated"] == [ssn["id"]]
        await client.post(f"/api/jobs/{job_id}/confirm", json={"ids": []})

        resp = await client.post(f"/api/jobs/{job_id}/redact")
        assert resp.status_code == 200
        assert resp.headers["x-redacted-count"] == "1"
        with fitz.open(stream=resp.content, filetype="pdf") as doc:
            text = doc[0].get_text()
        assert "john@example.com" not in text
        assert "123-45-6789" in text

    @pytest.mark.asyncio
    async def test_docx_round_trip(self, client: AsyncClient, make_docx):
        resp = await _upload(client, "letter.docx", make_docx([CONTACT]), DOCX_MEDIA)
        assert resp.status_code == 200
        job = resp.json()
        assert job["kind"] == "docx"
        assert len(job["entities"]) == 2

        await client.post(f"/api/jobs/{job['job_id']}/confirm", json={"ids": []})
        resp = await client.post(f"/api/jobs/{job['job_id']}/redact")
        assert resp.status_code == 200
        assert resp.headers["content-type"] == DOCX_MEDIA
        assert extract_docx_text(resp.content) == "Contact: [EMAIL], SSN [SSN]"

    @pytest.mark.asyncio
    async def test_docx_nothing_confirmed(self, client: AsyncClient, make_docx):
        job = (await _upload(client, "letter.docx", make_docx([CONTACT]), DOCX_MEDIA)).json()
        resp = await client.post(f"/api/jobs/{job['job_id']}/redact")
        assert resp.status_code == 422
        assert resp.json()["detail"]["error"] == "No entities confirmed for redaction"

"""
Shared fixtures.

Tests mock ALL external calls (Supabase, Storage, Anthropic, HTTP). PDFs are
generated in memory so no fixture files are needed.
"""

import os

import pytest

# Ensure env vars are set before importing anything that triggers app imports
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test-anon-key")

from fastapi.testclient import TestClient

from intake.models.email_message import EmailAttachment, EmailMessageInput
from intake.services.email_message_repo import InMemoryEmailMessageRepository
from intake.services.work_order_repo import InMemoryWorkOrderRepository


# Environment variables a developer machine (or .env) might set that would
# change behaviour under test.
_VOLATILE_ENV = [
    "ANTHROPIC_API_KEY",
    "AI_MODEL_NAME",
    "INDUSTRY_PROFILE_LABEL",
    "INDUSTRY_PROFILE_EXAMPLES",
    "SUPABASE_JWT_SECRET",
    "SUPABASE_PUBLIC_URL",
    "ENVIRONMENT",
    "INBOUND_EMAIL_SECRET",
    "ATTACHMENTS_BUCKET",
    "ATTACHMENT_URL_TTL_SECONDS",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in _VOLATILE_ENV:
        monkeypatch.delenv(name, raising=False)


# ---------------------------------------------------------------------------
# In-memory PDF builder
# ---------------------------------------------------------------------------

def _escape_pdf_text(text: str) -> str:
    return text.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")


def build_pdf(pages: list[list[str]]) -> bytes:
    """
    Assemble a minimal PDF with one Helvetica text line per list entry.

    An empty inner list produces a page with no text.
    """
    objects: list[bytes] = [
        b"",  # catalog, filled below
        b"",  # pages, filled below
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
    ]

    kids = []
    for lines in pages:
        page_num = len(objects) + 1
        content_num = page_num + 1
        kids.append(f"{page_num} 0 R")

        ops = ["BT", "/F1 12 Tf", "14 TL", "72 720 Td"]
        for line in lines:
            ops.append(f"({_escape_pdf_text(line)}) Tj T*")
        ops.append("ET")
        stream = "\n".join(ops).encode("latin-1")

        objects.append(
            (
                f"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] "
                f"/Contents {content_num} 0 R /Resources << /Font << /F1 3 0 R >> >> >>"
            ).encode("latin-1")
        )
        objects.append(
            f"<< /Length {len(stream)} >>\nstream\n".encode("latin-1") + stream + b"\nendstream"
        )

    objects[0] = b"<< /Type /Catalog /Pages 2 0 R >>"
    objects[1] = f"<< /Type /Pages /Kids [{' '.join(kids)}] /Count {len(kids)} >>".encode("latin-1")

    out = b"%PDF-1.4\n"
    offsets = []
    for number, body in enumerate(objects, start=1):
        offsets.append(len(out))
        out += f"{number} 0 obj\n".encode("latin-1") + body + b"\nendobj\n"

    xref_pos = len(out)
    out += f"xref\n0 {len(objects) + 1}\n".encode("latin-1")
    out += b"0000000000 65535 f \n"
    for offset in offsets:
        out += f"{offset:010d} 00000 n \n".encode("latin-1")
    out += (
        f"trailer\n<< /Size {len(objects) + 1} /Root 1 0 R >>\n"
        f"startxref\n{xref_pos}\n%%EOF\n"
    ).encode("latin-1")
    return out


@pytest.fixture
def make_pdf():
    """Factory: make_pdf("line 1", "line 2") -> single-page PDF bytes."""
    def _make(*lines: str) -> bytes:
        return build_pdf([list(lines)])
    return _make


@pytest.fixture
def make_multipage_pdf():
    """Factory: make_multipage_pdf([["page 1 line"], ["page 2 line"]]) -> PDF bytes."""
    return build_pdf


@pytest.fixture
def write_pdf(tmp_path, make_pdf):
    """Factory: write a generated PDF under tmp_path and return its path."""
    def _write(filename: str, *lines: str) -> str:
        path = tmp_path / filename
        path.write_bytes(make_pdf(*lines))
        return str(path)
    return _write


# ---------------------------------------------------------------------------
# Repositories and app client
# ---------------------------------------------------------------------------

@pytest.fixture
def email_repo():
    return InMemoryEmailMessageRepository()


@pytest.fixture
def work_order_repo():
    return InMemoryWorkOrderRepository()


@pytest.fixture
def store_email(email_repo):
    """Factory: persist an email with the given attachments and return it."""
    def _store(
        subject: str = "New work order",
        attachments: list[EmailAttachment] | None = None,
        body_text: str | None = None,
        received_at: str = "2025-12-06T10:00:00+00:00",
    ):
        return email_repo.save(
            EmailMessageInput(
                provider="test",
                from_address="dispatch@servicechannel.com",
                to_address="workorders@example.com",
                subject=subject,
                body_text=body_text,
                received_at=received_at,
                attachments=attachments or [],
            )
        )
    return _store


@pytest.fixture
def client(email_repo, work_order_repo):
    """TestClient with the Supabase-backed repositories swapped for in-memory ones."""
    from intake.main import app
    from intake.services.email_message_repo import get_email_message_repo
    from intake.services.work_order_repo import get_work_order_repo

    app.dependency_overrides[get_email_message_repo] = lambda: email_repo
    app.dependency_overrides[get_work_order_repo] = lambda: work_order_repo
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()

"""
Supabase Storage service for inbound email attachments.
Handles upload and signed URL generation.

Webhook providers that deliver attachment bytes inline (Postmark, Resend)
have those bytes uploaded here; the signed URL becomes the attachment's
storage_location, which the extraction pipeline later fetches over HTTP.
"""

import os
import re
from uuid import uuid4
from urllib.parse import urlparse, urlunparse

from intake.db import get_supabase_admin

DEFAULT_BUCKET = "email-attachments"
DEFAULT_URL_TTL_SECONDS = 7 * 24 * 3600


def get_attachments_bucket() -> str:
    return os.getenv("ATTACHMENTS_BUCKET") or DEFAULT_BUCKET


def get_attachment_url_ttl() -> int:
    raw = os.getenv("ATTACHMENT_URL_TTL_SECONDS")
    return int(raw) if raw else DEFAULT_URL_TTL_SECONDS


def _require_admin():
    client = get_supabase_admin()
    if client is None:
        raise ValueError("SUPABASE_SERVICE_KEY is required for storage operations")
    return client


def upload_email_attachment(
    file_content: bytes,
    filename: str,
    content_type: str,
    message_key: str | None = None,
) -> str:
    """
    Upload one attachment to Supabase Storage.

    Storage path: inbound/{message_key}/{sanitized_filename}

    Args:
        file_content: Binary content of the attachment
        filename: Original filename
        content_type: MIME type reported by the provider
        message_key: Folder grouping one email's attachments (UUID if omitted)

    Returns:
        Storage path (e.g., "inbound/3f2a.../1910446.pdf")

    Raises:
        Exception: If upload fails
    """
    client = _require_admin()

    if not message_key:
        message_key = uuid4().hex

    # Sanitize filename: replace spaces and special chars with underscores
    sanitized_filename = re.sub(r'[^\w\-.]', '_', filename) or f"{uuid4().hex}.bin"
    storage_path = f"inbound/{message_key}/{sanitized_filename}"

    try:
        client.storage.from_(get_attachments_bucket()).upload(
            storage_path,
            file_content,
            {
                "content-type": content_type,
                "upsert": "true"
            }
        )
        return storage_path
    except Exception as e:
        raise Exception(f"Failed to upload attachment to storage: {str(e)}")


def _rewrite_signed_url_host(signed_url: str) -> str:
    """
    Replace the host in a signed URL with SUPABASE_PUBLIC_URL, when set.

    Inside Docker the backend talks to Supabase on an internal host
    (``http://host.docker.internal:54321``) and Supabase embeds that host in
    the signed URL. Swapping in the public origin keeps the URL usable from
    outside the container. Without the env var the URL is returned unchanged.
    """
    public_url = os.getenv("SUPABASE_PUBLIC_URL", "").strip()
    if not public_url:
        return signed_url

    parsed_signed = urlparse(signed_url)
    parsed_public = urlparse(public_url)

    return urlunparse((
        parsed_public.scheme,
        parsed_public.netloc,
        parsed_signed.path,
        parsed_signed.params,
        parsed_signed.query,
        parsed_signed.fragment,
    ))


def get_signed_url(storage_path: str, expiry_seconds: int | None = None) -> str:
    """
    Generate a signed URL for a file in the attachments bucket.

    Args:
        storage_path: Storage path returned by upload_email_attachment
        expiry_seconds: URL lifetime (default: ATTACHMENT_URL_TTL_SECONDS or 7 days)

    Returns:
        Signed URL, host rewritten via _rewrite_signed_url_host.

    Raises:
        Exception: If URL generation fails
    """
    client = _require_admin()

    if expiry_seconds is None:
        expiry_seconds = get_attachment_url_ttl()

    try:
        result = client.storage.from_(get_attachments_bucket()).create_signed_url(
            storage_path,
            expiry_seconds
        )

        if not result or "signedURL" not in result:
            raise Exception("No signed URL returned from storage")

        return _rewrite_signed_url_host(result["signedURL"])
    except Exception as e:
        raise Exception(f"Failed to generate signed URL: {str(e)}")

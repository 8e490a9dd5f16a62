"""
Attachment byte loader.

Resolves an EmailAttachment's storage_location to raw bytes. Two location
kinds are supported:

  http:// or https://   fetched with httpx (signed Supabase Storage URLs)
  anything else         treated as a local filesystem path (a malformed
                        path, e.g. one with a NUL byte, is a load failure)

Failures never raise: they are logged and None is returned so the caller can
skip the attachment and carry on with the rest of the email.
"""

import logging
from pathlib import Path
from typing import Optional

import httpx

from intake.models.email_message import EmailAttachment

logger = logging.getLogger(__name__)


def _is_remote(location: str) -> bool:
    return location.startswith("http://") or location.startswith("https://")


def load_attachment_bytes(attachment: EmailAttachment) -> Optional[bytes]:
    """
    Load the raw bytes of an attachment.

    Returns:
        The file content, or None when the attachment has no location, the
        remote server answers with a non-2xx status, or the read fails.
    """
    location = attachment.storage_location
    if not location:
        logger.warning(f"[PDF] No storage location for attachment: {attachment.filename}")
        return None

    try:
        if _is_remote(location):
            # No timeout: the pipeline sets none of its own.
            response = httpx.get(location, timeout=None, follow_redirects=True)
            if not response.is_success:
                logger.error(
                    f"[PDF] Failed to fetch remote PDF: {location} "
                    f"{response.status_code} {response.reason_phrase}"
                )
                return None
            return response.content

        return Path(location).read_bytes()
    except (httpx.HTTPError, OSError, ValueError) as e:
        logger.error(f"[PDF] Error loading PDF: {location}: {e}")
        return None

#!/usr/bin/env python3
"""
Dev helper: send a test inbound-email webhook to the local intake backend.

Builds a webhook payload for the chosen provider around one work order PDF,
POSTs it to /api/inbound-email and, with --process, immediately runs the
extraction pipeline on the stored message.

Usage
-----
# "test" provider: the PDF is referenced by path, nothing is uploaded
python scripts/test_inbound_email.py --file samples/1898060.pdf

# Postmark payload (PDF sent inline as base64, uploaded to storage)
python scripts/test_inbound_email.py --provider postmark --file samples/1898060.pdf

# Store and process in one go
python scripts/test_inbound_email.py --file samples/1898060.pdf --process

Environment / .env
------------------
INBOUND_EMAIL_SECRET   Shared webhook secret (required).

The script reads it from a .env file in the project root (or backend/) if
present.
"""

import argparse
import base64
import json
import os
import sys
import textwrap
from datetime import datetime, timezone
from pathlib import Path

import httpx
from dotenv import load_dotenv


# ---------------------------------------------------------------------------
# Payload builders
# ---------------------------------------------------------------------------

def _build_test_payload(from_email, to_address, subject, body, file_path: Path) -> dict:
    """
    Test provider format (camelCase); the attachment points at a local path
    the backend can read.
    """
    return {
        "from": from_email,
        "to": to_address,
        "subject": subject,
        "text": body,
        "receivedAt": datetime.now(timezone.utc).isoformat(),
        "attachments": [
            {
                "filename": file_path.name,
                "mimeType": "application/pdf",
                "sizeBytes": file_path.stat().st_size,
                "storageLocation": str(file_path.resolve()),
            }
        ],
    }


def _build_postmark_payload(from_email, to_address, subject, body, file_path: Path) -> dict:
    """Postmark inbound format (PascalCase, base64 attachment content)."""
    content = file_path.read_bytes()
    return {
        "MessageID": f"dev-{int(datetime.now(timezone.utc).timestamp())}",
        "From": from_email,
        "To": to_address,
        "Subject": subject,
        "TextBody": body,
        "Attachments": [
            {
                "Name": file_path.name,
                "Content": base64.b64encode(content).decode(),
                "ContentType": "application/pdf",
                "ContentLength": len(content),
            }
        ],
    }


def _build_resend_payload(from_email, to_address, subject, body, file_path: Path) -> dict:
    """Resend inbound format (snake_case, base64 attachment content)."""
    return {
        "from": from_email,
        "to": [to_address],
        "subject": subject,
        "text": body,
        "created_at": datetime.now(timezone.utc).isoformat(),
        "attachments": [
            {
                "filename": file_path.name,
                "content": base64.b64encode(file_path.read_bytes()).decode(),
                "content_type": "application/pdf",
            }
        ],
    }


_PAYLOAD_BUILDERS = {
    "test": _build_test_payload,
    "postmark": _build_postmark_payload,
    "resend": _build_resend_payload,
}


# ---------------------------------------------------------------------------
# Pretty printer
# ---------------------------------------------------------------------------

def _print_response(response: httpx.Response) -> None:
    symbol = "OK" if response.is_success else "FAIL"
    print(f"\n[{symbol}] HTTP {response.status_code}")
    try:
        print(json.dumps(response.json(), indent=2))
    except ValueError:
        print(response.text)


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main() -> int:
    project_root = Path(__file__).resolve().parent.parent
    load_dotenv(project_root / ".env")
    load_dotenv(project_root / "backend" / ".env")

    parser = argparse.ArgumentParser(
        prog="test_inbound_email.py",
        description=textwrap.dedent("""\
            Send a test inbound-email webhook to the intake backend.

            Reads INBOUND_EMAIL_SECRET from the environment or a .env file.
        """),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--url", default="http://localhost:8000",
                        help="Backend base URL (default: http://localhost:8000)")
    parser.add_argument("--provider", default="test", choices=list(_PAYLOAD_BUILDERS),
                        help="Webhook payload format (default: test)")
    parser.add_argument("--file", required=True, metavar="PATH",
                        help="Work order PDF to attach")
    parser.add_argument("--from", dest="from_email", default="noreply@servicechannel.com",
                        help="Sender address")
    parser.add_argument("--to", dest="to_address", default="workorders@example.com",
                        help="Recipient address")
    parser.add_argument("--subject", default=None,
                        help='Email subject (default: "Work Order <file stem>")')
    parser.add_argument("--body", default="Please see the attached work order.",
                        help="Plain-text email body")
    parser.add_argument("--secret", default=None,
                        help="Override INBOUND_EMAIL_SECRET")
    parser.add_argument("--process", action="store_true",
                        help="Process the stored email right after the webhook succeeds")
    parser.add_argument("--dry-run", action="store_true",
                        help="Print the payload JSON without sending it")

    args = parser.parse_args()

    file_path = Path(args.file)
    if not file_path.exists():
        print(f"ERROR: File not found: {file_path}", file=sys.stderr)
        return 1

    secret = args.secret or os.getenv("INBOUND_EMAIL_SECRET", "")
    if not secret and not args.dry_run:
        print(
            "ERROR: No webhook secret found.\n"
            "Set INBOUND_EMAIL_SECRET in your environment or .env file, or pass --secret.",
            file=sys.stderr,
        )
        return 1

    subject = args.subject or f"Work Order {file_path.stem}"
    payload = _PAYLOAD_BUILDERS[args.provider](
        args.from_email, args.to_address, subject, args.body, file_path
    )

    base_url = args.url.rstrip("/")
    endpoint = f"{base_url}/api/inbound-email"

    print(f"Provider  : {args.provider}")
    print(f"Endpoint  : {endpoint}")
    print(f"Subject   : {subject}")
    print(f"Attachment: {file_path.name} ({file_path.stat().st_size:,} bytes)")

    if args.dry_run:
        print("\n[DRY RUN] Payload:")
        print(json.dumps(payload, indent=2)[:4000])
        return 0

    try:
        response = httpx.post(
            endpoint,
            json=payload,
            headers={"X-Inbound-Secret": secret, "X-Email-Provider": args.provider},
            timeout=30.0,
        )
    except httpx.HTTPError as e:
        print(f"ERROR: Request failed: {e}", file=sys.stderr)
        return 1

    _print_response(response)
    if not response.is_success:
        return 1

    if args.process:
        email_id = response.json()["id"]
        try:
            response = httpx.post(f"{base_url}/api/email-messages/{email_id}/process", timeout=120.0)
        except httpx.HTTPError as e:
            print(f"ERROR: Processing request failed: {e}", file=sys.stderr)
            return 1
        _print_response(response)
        if not response.is_success:
            return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())

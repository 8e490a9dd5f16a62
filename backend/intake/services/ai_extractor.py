"""
AI work order extraction service.

Sends the email subject, body and PDF text to Claude and maps the JSON reply
onto WorkOrderInput records. The model reply is treated as untrusted input:
parse_ai_response classifies it as OK, EMPTY or PARSE_FAILURE before anything
is mapped.

ai_parse_work_orders_from_email returns None whenever the caller should fall
back to rule-based extraction (AI not allowed, no usable PDF text, empty or
unparseable reply). Errors raised by the Anthropic client are NOT caught here;
the processing orchestrator logs them and falls back.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Tuple

import anthropic

from intake.config import IndustryProfile, get_ai_model_name, get_industry_profile
from intake.models.email_message import EmailMessage
from intake.models.work_order import TokenUsage, WorkOrderInput
from intake.plans import ExtractionCapabilities
from intake.services.attachment_loader import load_attachment_bytes
from intake.services.normalizer import clean_text, sanitize_amount
from intake.services.pdf_text import ExtractionError, extract_text_from_pdf_bytes

logger = logging.getLogger(__name__)

MAX_TOKENS = 4096
TEMPERATURE = 0.1
# Per-PDF text budget so several attachments fit in one request.
MAX_CHARS_PER_PDF = 8000

SYSTEM_PROMPT = (
    "You are a highly accurate Work Order Extraction Engine. "
    "Always respond with valid JSON only, no explanations."
)

EXTRACTION_PROMPT = """\
You are a highly accurate Work Order Extraction Engine specialized in {industry_label}.{examples_section}

Your task is to extract structured job data from THREE sources combined:

1) Email SUBJECT
2) Email BODY
3) PDF TEXT

Work orders may vary in wording, formatting, layout, and phrasing.
You must merge information from all sources and produce a single, consistent JSON object.

-----------------------
RULES (follow strictly)
-----------------------

1. OUTPUT FORMAT
   - Return ONLY valid JSON.
   - No explanations, no text outside the JSON object.

2. MISSING FIELDS
   - If a field is not present, return an empty string "".

3. DATES
   - Normalize all dates into ISO format: YYYY-MM-DD whenever possible.
   - If ambiguous, choose the most clearly stated scheduled date.
   - Do NOT invent dates.
   - If no date is found, use the email received date: {received_at}

4. AMOUNTS
   - For "amount" and "nte_amount", extract ONLY numeric characters.
     Example: "$125.00 NTE" -> "125"
     Example: "NTE $400.00" -> "400"
   - If "amount" is not found but "nte_amount" (Not To Exceed) is present,
     extract the NTE value to BOTH "amount" and "nte_amount" fields.
   - If no numeric value is found, return "".

5. DO NOT GUESS
   - Only extract what is explicitly stated in the subject, email body, or PDF.

6. MERGE ALL SOURCES
   - If a value appears in the subject but not in the PDF, use it.
   - If email body includes special notes or instructions, include them in "notes".
   - Prefer canonical PDF fields when contradictions occur.

7. VENDOR/FACILITY MANAGEMENT COMPANY
   - Extract "vendor_name" as the FACILITY MANAGEMENT COMPANY/PLATFORM that is sending/issuing the work order.
   - This is the work order management system or facility management platform (e.g., ServiceChannel, Corrigo, FMX, Hippo, ServiceTrade, etc.).
   - This is NOT the service provider/contractor doing the actual work (e.g., NOT the cleaning company, HVAC company, plumber, etc.).
   - This is different from "customer_name" (the job site/client/facility where work is being done).
   - Look for platform/system names in:
     * Email "From" field (if it's from a facility management platform)
     * PDF header/footer (often shows the platform name)
     * Work order system identifiers
   - Common facility management platforms: ServiceChannel, Corrigo, FMX, Hippo, ServiceTrade, Brightly, etc.
   - If you see a cleaning company, HVAC company, or other service provider name, that is NOT the vendor - that's the contractor/service provider.
   - If not found, return "".

8. INDUSTRY-SPECIFIC TERMINOLOGY
   - For "job_type" and "service_category", use terminology appropriate for {industry_label}.
   - Extract job types and categories that are common in this industry context.

-----------------------
INPUT DATA
-----------------------

EMAIL SUBJECT:
{subject}

EMAIL BODY:
{body}

PDF TEXT:
{pdf_text}

-----------------------
RETURN JSON EXACTLY IN THIS FORMAT:
-----------------------

{
  "workOrders": [
    {
      "work_order_number": "",
      "customer_name": "",
      "vendor_name": "",
      "service_address": "",
      "job_type": "",
      "job_description": "",
      "scheduled_date": "",
      "priority": "",
      "amount": "",
      "currency": "USD",
      "nte_amount": "",
      "service_category": "",
      "facility_id": "",
      "notes": ""
    }
  ]
}

IMPORTANT: Return ONLY the JSON object, no markdown, no code blocks, no explanations."""

_CODE_FENCE_RE = re.compile(r"```(?:json)?\s*(\{[\s\S]*\})\s*```")
_PLACEHOLDER_RE = re.compile(
    r"\{(examples_section|industry_label|received_at|subject|body|pdf_text)\}"
)


@dataclass
class PdfText:
    """Text extracted from one PDF attachment, ready for the prompt."""
    filename: str
    text: str
    storage_location: Optional[str] = None


class AiParseStatus(str, Enum):
    OK = "ok"
    EMPTY = "empty"
    PARSE_FAILURE = "parse_failure"


@dataclass
class AiParseResult:
    """
    Classified model reply.

    work_orders holds the raw objects from the "workOrders" array when
    status is OK; error describes what was wrong on PARSE_FAILURE.
    """
    status: AiParseStatus
    work_orders: list[dict] = field(default_factory=list)
    error: Optional[str] = None


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------

def build_extraction_prompt(
    subject: str,
    body_text: Optional[str],
    received_at: str,
    pdf_texts: list[PdfText],
    profile: Optional[IndustryProfile] = None,
) -> str:
    """
    Build the extraction prompt for one email (or one manual upload).

    PDF texts are labelled "--- PDF n: <filename> ---" in attachment order.
    The industry profile's worked examples are embedded verbatim when set.
    """
    if profile is None:
        profile = get_industry_profile()

    pdf_text = "\n\n".join(
        f"--- PDF {i}: {pdf.filename} ---\n{pdf.text}\n"
        for i, pdf in enumerate(pdf_texts, start=1)
    )
    examples_section = f"\n\n{profile.examples}\n" if profile.examples else ""

    values = {
        "examples_section": examples_section,
        "industry_label": profile.label,
        "received_at": received_at,
        "subject": subject,
        "body": body_text or "(Email body not available)",
        "pdf_text": pdf_text or "(No PDF text available)",
    }
    # Single pass: substituted email/PDF text is never rescanned for placeholders.
    return _PLACEHOLDER_RE.sub(lambda m: values[m.group(1)], EXTRACTION_PROMPT)


# ---------------------------------------------------------------------------
# Model call
# ---------------------------------------------------------------------------

def call_model(prompt: str, api_key: str) -> Tuple[str, TokenUsage]:
    """
    Send the prompt to Claude.

    Returns:
        (reply text, token usage). Reply text is "" when the model returned
        no text content.

    Raises:
        anthropic.APIError (and subclasses) on transport or API failures.
    """
    client = anthropic.Anthropic(api_key=api_key)

    response = client.messages.create(
        model=get_ai_model_name(),
        max_tokens=MAX_TOKENS,
        temperature=TEMPERATURE,
        system=SYSTEM_PROMPT,
        messages=[{"role": "user", "content": prompt}],
    )

    raw_text = ""
    if response.content:
        raw_text = getattr(response.content[0], "text", "") or ""

    token_usage = TokenUsage(
        input_tokens=response.usage.input_tokens,
        output_tokens=response.usage.output_tokens,
        total_tokens=response.usage.input_tokens + response.usage.output_tokens,
    )
    return raw_text, token_usage


# ---------------------------------------------------------------------------
# Response parsing and mapping
# ---------------------------------------------------------------------------

def parse_ai_response(response_text: str) -> AiParseResult:
    """
    Classify a raw model reply.

    A ```json fence around the object is tolerated. Anything that is not a
    JSON object with a "workOrders" array of objects is a PARSE_FAILURE.
    """
    json_text = (response_text or "").strip()

    fence = _CODE_FENCE_RE.search(json_text)
    if fence:
        json_text = fence.group(1)

    try:
        parsed = json.loads(json_text)
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse AI response as JSON: {e}")
        return AiParseResult(AiParseStatus.PARSE_FAILURE, error=f"Invalid JSON: {e}")

    if not isinstance(parsed, dict):
        logger.error("AI response is not a JSON object")
        return AiParseResult(AiParseStatus.PARSE_FAILURE, error="Top level is not an object")

    work_orders = parsed.get("workOrders")
    if not isinstance(work_orders, list):
        logger.error("AI response missing workOrders array")
        return AiParseResult(AiParseStatus.PARSE_FAILURE, error="Missing workOrders array")

    if not all(isinstance(wo, dict) for wo in work_orders):
        logger.error("AI response workOrders contains non-object entries")
        return AiParseResult(AiParseStatus.PARSE_FAILURE, error="workOrders entries must be objects")

    if not work_orders:
        return AiParseResult(AiParseStatus.EMPTY)

    return AiParseResult(AiParseStatus.OK, work_orders=work_orders)


def map_ai_work_order(
    raw: dict[str, Any],
    *,
    fallback_number: str,
    received_at: str,
    pdf_link: Optional[str] = None,
) -> WorkOrderInput:
    """
    Map one raw "workOrders" object onto a WorkOrderInput (user_id unset).

    amount falls back to nte_amount; an NTE value is also recorded in notes.
    Empty strings become None, except currency (defaults to USD) and
    scheduled_date (defaults to received_at).
    """
    nte_amount = clean_text(raw.get("nte_amount"))
    amount = sanitize_amount(clean_text(raw.get("amount")) or nte_amount)

    notes_parts = [clean_text(raw.get("notes")), f"NTE: {nte_amount}" if nte_amount else None]
    notes = " | ".join(part for part in notes_parts if part)

    return WorkOrderInput(
        work_order_number=clean_text(raw.get("work_order_number")) or fallback_number,
        timestamp_extracted=received_at,
        scheduled_date=clean_text(raw.get("scheduled_date")) or received_at,
        service_address=clean_text(raw.get("service_address")),
        job_type=clean_text(raw.get("job_type")),
        customer_name=clean_text(raw.get("customer_name")),
        vendor_name=clean_text(raw.get("vendor_name")),
        job_description=clean_text(raw.get("job_description")),
        amount=amount,
        currency=clean_text(raw.get("currency")) or "USD",
        notes=notes or None,
        priority=clean_text(raw.get("priority")),
        work_order_pdf_link=pdf_link,
    )


# ---------------------------------------------------------------------------
# Email pipeline
# ---------------------------------------------------------------------------

def collect_pdf_texts(email: EmailMessage) -> list[PdfText]:
    """
    Load and extract every PDF attachment, in order.

    Attachments that cannot be loaded or parsed are logged and skipped.
    Text is truncated to MAX_CHARS_PER_PDF.
    """
    pdf_texts: list[PdfText] = []

    for attachment in email.pdf_attachments():
        buffer = load_attachment_bytes(attachment)
        if buffer is None:
            logger.warning(f"[AI Parser] Skipping PDF {attachment.filename}: could not load")
            continue

        try:
            text = extract_text_from_pdf_bytes(buffer)
        except ExtractionError as e:
            logger.error(f"[AI Parser] Failed to extract text from PDF {attachment.filename}: {e}")
            continue

        pdf_texts.append(
            PdfText(
                filename=attachment.filename,
                text=text[:MAX_CHARS_PER_PDF],
                storage_location=attachment.storage_location,
            )
        )

    return pdf_texts


def ai_parse_work_orders_from_email(
    email: EmailMessage,
    capabilities: ExtractionCapabilities,
) -> Optional[list[WorkOrderInput]]:
    """
    Extract work orders from an email with Claude.

    Returns:
        A list of WorkOrderInput (user_id unset) when the model produced
        records, [] when it explicitly found none, or None when AI is not
        allowed, there is no usable PDF text, or the reply was empty or
        malformed.

    Raises:
        Whatever the Anthropic client raises; the caller decides how to
        recover.
    """
    if not capabilities.can_use_ai_extraction or not capabilities.api_key:
        return None

    if not email.pdf_attachments():
        return None

    pdf_texts = collect_pdf_texts(email)
    if not pdf_texts:
        logger.error(f"No PDF text could be extracted for email {email.id}")
        return None

    prompt = build_extraction_prompt(
        subject=email.subject,
        body_text=email.body_text,
        received_at=email.received_at,
        pdf_texts=pdf_texts,
    )

    response_text, token_usage = call_model(prompt, capabilities.api_key)
    logger.info(
        f"AI extraction for email {email.id}: "
        f"{token_usage.input_tokens} input / {token_usage.output_tokens} output tokens"
    )

    if not response_text.strip():
        logger.error(f"Empty response from model for email {email.id}")
        return None

    result = parse_ai_response(response_text)
    if result.status == AiParseStatus.PARSE_FAILURE:
        return None
    if result.status == AiParseStatus.EMPTY:
        return []

    # Only attributable when a single document was sent.
    pdf_link = pdf_texts[0].storage_location if len(pdf_texts) == 1 else None
    fallback_number = f"UNKNOWN-{email.id[:8]}"

    return [
        map_ai_work_order(
            raw,
            fallback_number=fallback_number,
            received_at=email.received_at,
            pdf_link=pdf_link,
        )
        for raw in result.work_orders
    ]

"""
Subscription plans, feature flags and extraction capabilities.

The extraction core never reads plan state itself. Routers resolve the plan
for a request, turn it into an ExtractionCapabilities value and pass that
explicitly into the pipeline.

Plans:
  FREE_BYOK  Bring-your-own-key: the caller supplies a model key per request.
  PRO        Server-side AI processing.
  PREMIUM    PRO plus invoice / portal / integration features (stubs).

Plan resolution is header-based (X-Plan) for now; billing integration will
replace it.
"""

import os
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from fastapi import Header

from intake.config import get_server_api_key


class Plan(str, Enum):
    FREE_BYOK = "FREE_BYOK"
    PRO = "PRO"
    PREMIUM = "PREMIUM"


@dataclass(frozen=True)
class FeatureFlags:
    can_use_byok: bool
    can_use_server_key: bool
    can_use_gmail_import: bool = False
    can_use_signed_copy_matching: bool = False
    can_use_invoices: bool = False
    can_use_customer_portal: bool = False
    can_use_integrations: bool = False


FEATURES_BY_PLAN: dict[Plan, FeatureFlags] = {
    Plan.FREE_BYOK: FeatureFlags(
        can_use_byok=True,
        can_use_server_key=False,
    ),
    Plan.PRO: FeatureFlags(
        can_use_byok=False,
        can_use_server_key=True,
        can_use_gmail_import=True,
        can_use_signed_copy_matching=True,
    ),
    Plan.PREMIUM: FeatureFlags(
        can_use_byok=False,
        can_use_server_key=True,
        can_use_gmail_import=True,
        can_use_signed_copy_matching=True,
        can_use_invoices=True,
        can_use_customer_portal=True,
        can_use_integrations=True,
    ),
}


@dataclass(frozen=True)
class ExtractionCapabilities:
    """
    What the extraction pipeline may do for a single request.

    api_key is the model key to use (server key or the caller's own key);
    it is never stored or logged.
    """

    can_use_ai_extraction: bool
    api_key: Optional[str] = None

    @classmethod
    def rules_only(cls) -> "ExtractionCapabilities":
        return cls(can_use_ai_extraction=False, api_key=None)


def get_default_plan() -> Plan:
    """FREE_BYOK in production, PRO everywhere else (local development)."""
    if os.getenv("ENVIRONMENT", "").lower() == "production":
        return Plan.FREE_BYOK
    return Plan.PRO


def resolve_plan(plan_header: Optional[str]) -> Plan:
    """Map an X-Plan header value to a Plan, falling back to the default."""
    if plan_header:
        try:
            return Plan(plan_header.strip().upper())
        except ValueError:
            pass
    return get_default_plan()


def has_feature(plan: Plan, feature: str) -> bool:
    return bool(getattr(FEATURES_BY_PLAN[plan], feature))


def resolve_capabilities(plan: Plan, byok_key: Optional[str] = None) -> ExtractionCapabilities:
    """
    Turn a plan (and optional caller-supplied key) into extraction capabilities.

    FREE_BYOK uses only the caller's key; paid plans use only the server key.
    AI extraction is allowed whenever a key results.
    """
    flags = FEATURES_BY_PLAN[plan]

    api_key: Optional[str] = None
    if flags.can_use_byok:
        api_key = (byok_key or "").strip() or None
    elif flags.can_use_server_key:
        api_key = get_server_api_key()

    return ExtractionCapabilities(can_use_ai_extraction=api_key is not None, api_key=api_key)


# ---------------------------------------------------------------------------
# FastAPI dependencies
# ---------------------------------------------------------------------------

def get_request_plan(x_plan: Optional[str] = Header(None)) -> Plan:
    return resolve_plan(x_plan)


def get_extraction_capabilities(
    x_plan: Optional[str] = Header(None),
    x_anthropic_key: Optional[str] = Header(None),
) -> ExtractionCapabilities:
    """Capabilities for this request; the BYOK header is only honoured on FREE_BYOK."""
    return resolve_capabilities(resolve_plan(x_plan), x_anthropic_key)

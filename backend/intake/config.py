"""
AI extraction configuration.

Values are read from the environment on every call so tests can patch
os.environ without reloading modules.

  ANTHROPIC_API_KEY          Server-side model key. AI parsing is enabled
                             only when it is set (or a BYOK key is supplied).
  AI_MODEL_NAME              Model used for extraction.
  INDUSTRY_PROFILE_LABEL     Industry the prompt is tuned for.
  INDUSTRY_PROFILE_EXAMPLES  Optional worked examples, injected verbatim
                             into the prompt.
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

# Cost-effective model; structured extraction does not need the largest tier.
DEFAULT_MODEL = "claude-haiku-4-5-20251001"
DEFAULT_INDUSTRY_LABEL = "Facility Management"


@dataclass(frozen=True)
class IndustryProfile:
    label: str
    examples: Optional[str] = None


def get_server_api_key() -> Optional[str]:
    """Return the server-side Anthropic key, or None when not configured."""
    return os.getenv("ANTHROPIC_API_KEY") or None


def is_ai_parsing_enabled() -> bool:
    """AI parsing is enabled when a server-side model key is configured."""
    return get_server_api_key() is not None


def get_ai_model_name() -> str:
    return os.getenv("AI_MODEL_NAME") or DEFAULT_MODEL


def get_industry_profile() -> IndustryProfile:
    return IndustryProfile(
        label=os.getenv("INDUSTRY_PROFILE_LABEL") or DEFAULT_INDUSTRY_LABEL,
        examples=os.getenv("INDUSTRY_PROFILE_EXAMPLES") or None,
    )

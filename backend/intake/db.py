"""
Database client configuration.
Uses Supabase for PostgreSQL + Auth + Storage.

Clients are created on first use and cached, so importing the app (or the
test suite) does not require Supabase credentials.
"""

import os
from functools import lru_cache
from typing import Optional

from supabase import create_client, Client
from dotenv import load_dotenv

load_dotenv()


@lru_cache(maxsize=1)
def get_supabase() -> Client:
    """Client for user-level operations (uses anon key + RLS)."""
    url = os.getenv("SUPABASE_URL")
    key = os.getenv("SUPABASE_KEY")
    if not url or not key:
        raise ValueError("SUPABASE_URL and SUPABASE_KEY must be set in environment variables")
    return create_client(url, key)


@lru_cache(maxsize=1)
def get_supabase_admin() -> Optional[Client]:
    """
    Admin client for service-level operations (bypasses RLS).

    Returns None when SUPABASE_SERVICE_KEY is not configured.
    """
    url = os.getenv("SUPABASE_URL")
    service_key = os.getenv("SUPABASE_SERVICE_KEY")
    if not url or not service_key:
        return None
    return create_client(url, service_key)

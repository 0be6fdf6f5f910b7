"""
Supabase client initialization.

This module contains *only* the database connection setup and exposes
`get_supabase()`, which creates a single shared client on first use. The API
layer injects it with FastAPI `Depends(get_supabase)`; repository functions
receive the client as their first argument.

Environment variables required:
- SUPABASE_URL: Your Supabase project URL
- SUPABASE_KEY: Your Supabase service-role key (the webhook writes sales and
  balances, so an anon key is not enough)
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from supabase import Client, create_client

# Load environment variables from the project root .env file
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(dotenv_path=env_path)


@lru_cache(maxsize=1)
def get_supabase() -> Client:
    """Return the process-wide Supabase client, creating it on first call."""

    supabase_url = os.getenv("SUPABASE_URL")
    supabase_key = os.getenv("SUPABASE_KEY")

    if not supabase_url:
        raise RuntimeError(
            "Missing environment variable: SUPABASE_URL. "
            "Set SUPABASE_URL to your Supabase project URL."
        )

    if not supabase_key:
        raise RuntimeError(
            "Missing environment variable: SUPABASE_KEY. "
            "Set SUPABASE_KEY to your Supabase service-role key."
        )

    return create_client(supabase_url, supabase_key)


__all__ = ["get_supabase"]

# =============================================================================
# lib/ - Standalone Utility Modules
# =============================================================================
# This package contains reusable clients and utilities:
# - supabase_client.py: Document-style wrapper over Supabase tables
# - instagram.py: httpx client for the Instagram OAuth and Graph APIs
# - collections.py: Table names
# - utils.py: Shared utilities (timestamps, base error class)
#
# These modules are self-contained and can be tested in isolation.
# =============================================================================

from lib.supabase_client import SupabaseClientError, SupabaseStore
from lib.instagram import InstagramAPI, InstagramAPIError
from lib.utils import ApplicationError, parse_timestamp, utc_now

__all__ = [
    # Supabase
    "SupabaseStore",
    "SupabaseClientError",
    # Instagram
    "InstagramAPI",
    "InstagramAPIError",
    # Utils
    "ApplicationError",
    "parse_timestamp",
    "utc_now",
]

# =============================================================================
# core/services/user_service.py - User Profile Business Logic
# =============================================================================
# Reads and updates rows in the `users` table. Rows are created by the auth
# trigger on signup; this service only fills in the profile.
# =============================================================================

import logging

from app.exceptions import UserNotFoundError
from core.models.user import ProfileSetupRequest, UserProfile
from lib import collections
from lib.supabase_client import SupabaseStore
from lib.utils import utc_now_iso

logger = logging.getLogger(__name__)


class UserService:
    """Profile lookups shared by the messaging, order and Instagram services."""

    def __init__(self, store: SupabaseStore):
        self.store = store

    def find_profile(self, user_id: str) -> UserProfile | None:
        row = self.store.get(collections.USERS, user_id)
        return UserProfile(**row) if row else None

    def get_profile(self, user_id: str) -> UserProfile:
        """
        Get a user's profile.

        Raises:
            UserNotFoundError: If no users row exists
        """
        profile = self.find_profile(user_id)
        if profile is None:
            raise UserNotFoundError(user_id)
        return profile

    def get_raw(self, user_id: str) -> dict:
        """The full users row, including Instagram token columns."""
        row = self.store.get(collections.USERS, user_id)
        if row is None:
            raise UserNotFoundError(user_id)
        return row

    def setup_profile(self, user_id: str, email: str | None, request: ProfileSetupRequest) -> UserProfile:
        """
        Save the profile-setup form.

        Upserts so that a user whose auth trigger hasn't run yet still gets a row.
        """
        data = request.to_update()
        data["id"] = user_id
        data["updated_at"] = utc_now_iso()
        if email:
            data["email"] = email

        row = self.store.upsert(collections.USERS, data)
        logger.info(f"Profile saved for user {user_id} as {request.role.value}")
        return UserProfile(**row)

    def update_fields(self, user_id: str, data: dict) -> None:
        """Write arbitrary columns (Instagram connection state, sync times)."""
        self.store.update(collections.USERS, {"id": user_id}, data)

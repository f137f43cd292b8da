# supabase_client.py - Supabase admin client used for auth user lookups

import asyncio
import logging

from supabase import create_client, Client

logger = logging.getLogger(__name__)


class SupabaseAdmin:
    """Service-role Supabase client, created on first use."""

    def __init__(self, url: str, service_role_key: str):
        if not url or not service_role_key:
            raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set in environment variables")
        self.url = url
        self.service_role_key = service_role_key
        self._client: Client | None = None

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = create_client(self.url, self.service_role_key)
        return self._client

    async def get_user_email(self, user_id: str) -> str | None:
        """Look up a user's email through the auth admin API."""
        try:
            response = await asyncio.to_thread(self.client.auth.admin.get_user_by_id, str(user_id))
        except Exception as e:
            logger.error(f"Error fetching user {user_id}: {e}")
            return None
        user = getattr(response, "user", None)
        return getattr(user, "email", None) if user else None

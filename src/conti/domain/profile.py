"""User profile domain service."""

from datetime import datetime
from typing import Optional

from conti.database.base import Database
from conti.database.changes import PROFILE, LiveQuery
from conti.domain.entities import Profile
from conti.domain.errors import ValidationError
from conti.domain.identity import IdentityProvider, require_user
from conti.logging_config import get_logger

logger = get_logger(__name__)


class ProfileService:
    """Service for the per-user profile document."""

    def __init__(self, db: Database, identity: IdentityProvider):
        self.db = db
        self.identity = identity

    async def update_profile(self, email: str, display_name: Optional[str] = None) -> None:
        """Create or merge the profile and stamp the login time.

        ``display_name`` is left unchanged when omitted.
        """
        user_id = require_user(self.identity)
        if not email or "@" not in email:
            raise ValidationError(f"Invalid email '{email}'")
        now = datetime.now()
        changes = {"email": email.strip(), "last_login": now}
        if display_name is not None:
            changes["display_name"] = display_name.strip() or None
        await self.db.upsert_profile(user_id, changes, now=now)
        logger.info("profile_updated", user_id=user_id)

    async def get_profile(self) -> Optional[Profile]:
        """Get the current user's profile, or None before the first update."""
        user_id = require_user(self.identity)
        return await self.db.get_profile(user_id)

    async def watch_profile(self) -> LiveQuery[Optional[Profile]]:
        """Watch the current user's profile."""
        user_id = require_user(self.identity)
        return await self.db.watch(user_id, (PROFILE,), lambda: self.db.get_profile(user_id))

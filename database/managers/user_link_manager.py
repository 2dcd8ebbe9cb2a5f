from typing import Optional

from database.async_db import AsyncDatabase
from database.models.user_link import UserLink
from utils.logger import get_logger

log = get_logger("[UserLinkManager]")


class UserLinkManager:
    """Maps Telegram accounts to backend profiles."""

    def __init__(self, db: AsyncDatabase):
        self.db = db

    async def touch(self, tg_user_id: int, role: str) -> UserLink:
        """Registers the Telegram user on first contact and keeps the role in sync."""
        sql = """
              INSERT INTO bot_users (tg_user_id, role)
              VALUES ($1, $2)
              ON CONFLICT (tg_user_id) DO UPDATE SET role = EXCLUDED.role
              RETURNING id, tg_user_id, profile_id, role;
              """
        rec = await self.db.fetchrow(sql, tg_user_id, role)
        return UserLink.from_record(rec)

    async def link_profile(self, tg_user_id: int, profile_id: str) -> Optional[UserLink]:
        sql = """
              UPDATE bot_users
              SET profile_id = $2
              WHERE tg_user_id = $1
              RETURNING id, tg_user_id, profile_id, role;
              """
        rec = await self.db.fetchrow(sql, tg_user_id, profile_id)
        if rec:
            log.info(f"Telegram user {tg_user_id} linked to profile {profile_id}")
        return UserLink.from_record(rec)

    async def get_profile_id(self, tg_user_id: int) -> Optional[str]:
        sql = "SELECT profile_id FROM bot_users WHERE tg_user_id = $1;"
        return await self.db.fetchval(sql, tg_user_id)

    async def get_tg_user_id(self, profile_id: str) -> Optional[int]:
        sql = "SELECT tg_user_id FROM bot_users WHERE profile_id = $1;"
        return await self.db.fetchval(sql, profile_id)

from typing import Optional

import asyncpg
from dataclasses import dataclass


@dataclass
class UserLink:
    id: int
    tg_user_id: int
    profile_id: Optional[str]  # profiles.id in the backend
    role: str

    @classmethod
    def from_record(cls, record: asyncpg.Record) -> Optional["UserLink"]:
        if not record:
            return None
        return cls(
            id=record["id"],
            tg_user_id=record["tg_user_id"],
            profile_id=record.get("profile_id"),
            role=record["role"],
        )

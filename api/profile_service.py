from typing import Optional

import phonenumbers

from api.supabase_client import SupabaseClient, in_
from utils.logger import get_logger

log = get_logger("[ProfileService]")


def phone_candidates(e164: str) -> list[str]:
    """Spellings a profile phone may be stored in: +639171234567, 639171234567, 09171234567."""
    num = phonenumbers.parse(e164, None)
    national = "0" + str(num.national_number)
    return [e164, e164.lstrip("+"), national]


class ProfileService:
    def __init__(self, client: SupabaseClient):
        self.client = client

    async def find_by_phone(self, e164: str) -> Optional[dict]:
        rows = await self.client.select("profiles", {
            "select": "id,full_name,phone_number",
            "phone_number": in_(phone_candidates(e164)),
            "limit": "1",
        })
        if not rows:
            log.info(f"No profile for phone {e164}")
            return None
        return rows[0]

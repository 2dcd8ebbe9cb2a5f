# utils/secrets.py
import os
import json
import logging
from threading import Lock

# Lock so concurrent writers don't clobber the file
file_lock = Lock()
log = logging.getLogger(__name__)

SECRETS_JSON_PATH = os.getenv(
    "SECRETS_JSON_PATH", os.path.join(os.path.dirname(__file__), '../secrets.json')
)

ROLE_KEYS = {
    "admin": "ADMIN_IDS",
    "rider": "RIDER_IDS",
}


def _load_secrets() -> dict:
    try:
        with open(SECRETS_JSON_PATH, 'r', encoding='utf-8') as f:
            return json.load(f)
    except (FileNotFoundError, json.JSONDecodeError):
        # Missing or empty file means nobody has a staff role yet
        return {"ADMIN_IDS": [], "RIDER_IDS": []}


def _save_secrets(data: dict) -> None:
    with open(SECRETS_JSON_PATH, 'w', encoding='utf-8') as f:
        json.dump(data, f, ensure_ascii=False, indent=2)


def _get_ids(key: str) -> list[int]:
    with file_lock:
        secrets = _load_secrets()
        return [int(tg_id) for tg_id in secrets.get(key, [])]


def get_admin_ids() -> list[int]:
    return _get_ids("ADMIN_IDS")


def get_rider_ids() -> list[int]:
    return _get_ids("RIDER_IDS")


def add_role_member(role: str, user_id: int) -> bool:
    """Adds a Telegram id to the role list. Returns True if it was added."""
    key = ROLE_KEYS[role]
    with file_lock:
        secrets = _load_secrets()
        ids = secrets.get(key, [])
        if user_id not in ids:
            ids.append(user_id)
            secrets[key] = ids
            _save_secrets(secrets)
            log.info(f"User {user_id} added to {key}.")
            return True
        log.warning(f"User {user_id} is already in {key}.")
        return False


def remove_role_member(role: str, user_id: int) -> bool:
    """Removes a Telegram id from the role list. Returns True if it was removed."""
    key = ROLE_KEYS[role]
    with file_lock:
        secrets = _load_secrets()
        ids = secrets.get(key, [])
        if user_id in ids:
            ids.remove(user_id)
            secrets[key] = ids
            _save_secrets(secrets)
            log.info(f"User {user_id} removed from {key}.")
            return True
        log.warning(f"User {user_id} is not in {key}.")
        return False


def get_role(user_id: int) -> str:
    """Admin wins over rider; everyone else is a customer."""
    if user_id in get_admin_ids():
        return "admin"
    if user_id in get_rider_ids():
        return "rider"
    return "customer"

# =============================================================================
# USER ID RESOLVER UTILITY
# =============================================================================
# Device-scoped anonymous user ids, plus validation of ids coming from
# request headers, bodies and query strings.

import json
import logging
import os
import random
import re
import string
import threading
import time
from typing import Optional

logger = logging.getLogger(__name__)

# Lock for in-process safety when reading/writing the device id file
_device_lock = threading.Lock()

_BASE36 = string.digits + string.ascii_lowercase
_USER_ID_RE = re.compile(r"^[A-Za-z0-9_.:@-]{1,128}$")


def generate_user_id(now_ms: Optional[int] = None) -> str:
    """
    New anonymous id: ``user_<epoch ms>_<9 base36 chars>``.

    Examples:
        generate_user_id() -> 'user_1718030000000_k3j9x0a1b'
    """
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    suffix = "".join(random.choice(_BASE36) for _ in range(9))
    return f"user_{now_ms}_{suffix}"


def _load_device_file(path: str) -> dict:
    try:
        if os.path.exists(path):
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return data if isinstance(data, dict) else {}
    except (OSError, ValueError):
        logger.exception("Failed to load device id file")
    return {}


def _save_device_file(path: str, data: dict) -> None:
    try:
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
    except OSError:
        logger.exception("Failed to save device id file")


def get_or_create_device_user_id(path: str) -> str:
    """
    Return the user id stored for this device, creating and persisting a
    new one the first time. If the file can't be written the id still
    works for the lifetime of the process.
    """
    with _device_lock:
        data = _load_device_file(path)
        user_id = data.get("user_id")
        if isinstance(user_id, str) and _USER_ID_RE.match(user_id):
            return user_id

        user_id = generate_user_id()
        _save_device_file(path, {"user_id": user_id, "created_at": int(time.time() * 1000)})
        logger.info(f"Assigned device user id {user_id}")
        return user_id


def validate_user_id(user_id_input) -> tuple[bool, str | None, str | None]:
    """
    Validate a user id with error details.

    Returns:
        tuple: (is_valid, user_id, error_message)
    """
    if user_id_input is None or user_id_input == "":
        return False, None, "User ID is required"

    if not isinstance(user_id_input, str):
        return False, None, "User ID must be a string"

    user_id = user_id_input.strip()
    if not _USER_ID_RE.match(user_id):
        return False, None, "Invalid user ID format: use letters, digits and _ . : @ - (max 128)"
    return True, user_id, None


# Helper for routes: header, then JSON body, then query string
def resolve_user_id_from_request(req, key: str = "user_id") -> tuple[bool, str | None, str | None]:
    """
    Resolve the user id of a Flask request.

    Args:
        req: Flask request
        key (str): body / query string field name (default: 'user_id')

    Returns:
        tuple: (is_valid, user_id, error_message)
    """
    user_id_input = req.headers.get("X-User-Id")
    if not user_id_input:
        data = req.get_json(silent=True)
        if isinstance(data, dict):
            user_id_input = data.get(key)
    if not user_id_input:
        user_id_input = req.args.get(key)

    return validate_user_id(user_id_input)

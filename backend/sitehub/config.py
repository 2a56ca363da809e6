"""
Runtime settings read from the environment (and a local .env file, if any).

Existing OS environment variables always win over .env values.
"""

import logging
import os
from typing import List

from dotenv import load_dotenv

load_dotenv(override=False)

logger = logging.getLogger(__name__)


def _parse_id_list(raw: str) -> List[int]:
    ids: List[int] = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            ids.append(int(part))
        except ValueError:
            logger.warning(f"Ignoring invalid user id in SUPER_ADMIN_USER_IDS: '{part}'")
    return ids


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./sitehub.db")
SQL_ECHO = os.getenv("SQL_ECHO", "false").lower() in ("true", "1", "yes")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

CORS_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
_extra = os.getenv("CORS_ORIGINS", "")
if _extra:
    CORS_ORIGINS.extend(o.strip() for o in _extra.split(",") if o.strip())

# Users that may open any site through Sites.get_for_user(..., roles=["super_admin"])
SUPER_ADMIN_USER_IDS = _parse_id_list(os.getenv("SUPER_ADMIN_USER_IDS", ""))

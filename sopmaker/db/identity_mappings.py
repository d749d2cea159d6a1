"""Translation table between legacy-provider UIDs and canonical account ids."""

import logging
from uuid import UUID, uuid4

from .connection import get_db_cursor

logger = logging.getLogger(__name__)


def get_or_create_mapping(firebase_uid: str) -> UUID:
    """Return the canonical id mapped to `firebase_uid`, creating it on first sight.

    A single upsert guarded by the unique constraint on `firebase_uid`, so two
    concurrent first sign-ins resolve to the same canonical id.
    """
    candidate = uuid4()
    with get_db_cursor() as cursor:
        cursor.execute(
            """
            INSERT INTO firebase_user_mapping (firebase_uid, supabase_uuid)
            VALUES (%s, %s)
            ON CONFLICT (firebase_uid)
            DO UPDATE SET firebase_uid = EXCLUDED.firebase_uid
            RETURNING supabase_uuid
            """,
            (firebase_uid, str(candidate)),
        )
        row = cursor.fetchone()
    canonical_id = UUID(str(row[0]))
    if canonical_id == candidate:
        logger.info(f"Created identity mapping {firebase_uid} -> {canonical_id}")
    return canonical_id

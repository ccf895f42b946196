"""Versioned MongoDB index migrations for auth collections."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable

import pymongo
from pymongo.errors import PyMongoError

from uzpharm.core.logging import CORRELATION_ID_CTX

LOGGER = logging.getLogger(__name__)

MigrationFn = Callable[[Any], None]


def _migration_20250301_01_user_indexes(db: Any) -> None:
    db["auth_users"].create_index("user_id", unique=True)


def _migration_20250301_02_contact_uniqueness(db: Any) -> None:
    db["auth_users"].create_index(
        "email",
        unique=True,
        name="uniq_auth_users_email",
        partialFilterExpression={"email": {"$type": "string"}},
    )
    db["auth_users"].create_index(
        "phone",
        unique=True,
        name="uniq_auth_users_phone",
        partialFilterExpression={"phone": {"$type": "string"}},
    )


MIGRATIONS: list[tuple[str, MigrationFn]] = [
    ("20250301_01_user_indexes", _migration_20250301_01_user_indexes),
    ("20250301_02_contact_uniqueness", _migration_20250301_02_contact_uniqueness),
]


def apply_mongo_migrations(mongo_uri: str, mongo_db: str) -> list[str]:
    """Apply pending migrations when a MongoDB URI is configured."""
    if not mongo_uri:
        return []

    applied: list[str] = []
    client: Any = pymongo.MongoClient(mongo_uri, serverSelectionTimeoutMS=3000)
    try:
        try:
            client.admin.command("ping")
            db = client[mongo_db]
            migration_collection = db["schema_migrations"]
            migration_collection.create_index("migration_id", unique=True)

            for migration_id, migration_fn in MIGRATIONS:
                if migration_collection.find_one({"migration_id": migration_id}):
                    continue
                migration_fn(db)
                migration_collection.insert_one(
                    {
                        "migration_id": migration_id,
                        "applied_at": datetime.now(timezone.utc),
                        "correlation_id": CORRELATION_ID_CTX.get(),
                    }
                )
                applied.append(migration_id)
        except PyMongoError:
            LOGGER.exception("mongo_migrations_failed")
            return applied
    finally:
        client.close()
    return applied

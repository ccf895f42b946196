"""Repository for auth users with MongoDB primary and JSON file fallback."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from threading import Lock
from typing import Any

from pymongo import MongoClient
from pymongo.errors import PyMongoError

from uzpharm.auth.contacts import is_email, normalize_email, normalize_phone
from uzpharm.auth.models import AuthUser, utcnow

LOGGER = logging.getLogger(__name__)


class AuthRepository:
    """Credential store for user records."""

    def __init__(
        self, runtime_dir: Path, *, mongo_uri: str = "", mongo_db: str = "uzpharm"
    ) -> None:
        """Initialize repository storage backends."""
        self._fallback_dir = runtime_dir / "auth_store"
        self._fallback_dir.mkdir(parents=True, exist_ok=True)
        self._users_file = self._fallback_dir / "users.json"
        self._file_lock = Lock()

        self._mongo_users = None
        if mongo_uri:
            try:
                client: MongoClient = MongoClient(mongo_uri, serverSelectionTimeoutMS=3000)
                client.admin.command("ping")
                self._mongo_users = client[mongo_db]["auth_users"]
            except PyMongoError:
                LOGGER.warning("mongo_unavailable_using_file_store")
                self._mongo_users = None

    @property
    def uses_mongo(self) -> bool:
        return self._mongo_users is not None

    def _read_json_file(self, path: Path) -> list[dict[str, Any]]:
        """Read list payload from JSON file with empty fallback."""
        if not path.exists():
            return []
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            LOGGER.warning("auth_store_unreadable")
            return []
        return payload if isinstance(payload, list) else []

    def _write_json_file(self, path: Path, items: list[dict[str, Any]]) -> None:
        """Persist list payload to JSON file via an atomic rename."""
        tmp_path = path.with_suffix(".tmp")
        tmp_path.write_text(json.dumps(items, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp_path.replace(path)

    def _find_one(self, field: str, value: str) -> AuthUser | None:
        if not value:
            return None
        if self._mongo_users is not None:
            doc = self._mongo_users.find_one({field: value}, {"_id": 0})
            return AuthUser.model_validate(doc) if doc else None

        with self._file_lock:
            rows = self._read_json_file(self._users_file)
        for row in rows:
            if row.get(field) == value:
                return AuthUser.model_validate(row)
        return None

    def get_user_by_id(self, user_id: str) -> AuthUser | None:
        return self._find_one("user_id", user_id)

    def get_user_by_email(self, email: str) -> AuthUser | None:
        """Get user by email, case-insensitively."""
        return self._find_one("email", normalize_email(email))

    def get_user_by_phone(self, phone: str) -> AuthUser | None:
        return self._find_one("phone", normalize_phone(phone))

    def get_user_by_email_or_phone(self, identifier: str) -> AuthUser | None:
        """Resolve an identifier: anything with ``@`` is looked up as email."""
        if is_email(identifier):
            return self.get_user_by_email(identifier)
        return self.get_user_by_phone(identifier)

    def upsert_user(self, user: AuthUser) -> AuthUser:
        """Create or update a user keyed by ``user_id``."""
        stored = user.model_copy(
            update={
                "email": normalize_email(user.email) if user.email else None,
                "phone": normalize_phone(user.phone) if user.phone else None,
                "updated_at": utcnow(),
            }
        )
        doc = stored.model_dump(mode="json")
        if self._mongo_users is not None:
            self._mongo_users.update_one(
                {"user_id": stored.user_id}, {"$set": doc}, upsert=True
            )
            return stored

        with self._file_lock:
            items = self._read_json_file(self._users_file)
            next_items = [row for row in items if row.get("user_id") != stored.user_id]
            next_items.append(doc)
            self._write_json_file(self._users_file, next_items)
        return stored

    def update_password(self, user_id: str, password_hash: str) -> None:
        self._update_fields(user_id, {"password_hash": password_hash})

    def update_last_login(self, user_id: str, at: datetime | None = None) -> None:
        self._update_fields(user_id, {"last_login_at": (at or utcnow()).isoformat()})

    def _update_fields(self, user_id: str, fields: dict[str, Any]) -> None:
        changes = {**fields, "updated_at": utcnow().isoformat()}
        if self._mongo_users is not None:
            self._mongo_users.update_one({"user_id": user_id}, {"$set": changes})
            return

        with self._file_lock:
            items = self._read_json_file(self._users_file)
            for row in items:
                if row.get("user_id") == user_id:
                    row.update(changes)
            self._write_json_file(self._users_file, items)

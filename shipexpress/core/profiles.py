# shipexpress/core/profiles.py

import logging
from typing import Any, Dict, Optional

from shipexpress.core.errors import AuthorizationError, ValidationError
from shipexpress.core.models import CurrentUser, UserProfile
from shipexpress.core.role_guard import ALL_ROLES
from shipexpress.storage.backend import StorageBackend, with_retries

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = {"name", "phone", "avatar_url", "address"}


class ProfileService:
    """Profile CRUD for the signed-in user. Roles are fixed at creation."""

    def __init__(self, backend: StorageBackend, current_user: CurrentUser, blob_storage=None):
        self.backend = backend
        self.current_user = current_user
        self.blob_storage = blob_storage

    def create_profile(self, name: str, role: str, phone: Optional[str] = None,
                       address: Optional[str] = None) -> UserProfile:
        if role not in ALL_ROLES:
            raise ValidationError("role", f"Unknown role '{role}'")
        if not name or not name.strip():
            raise ValidationError("name", "Name is required")

        stored = self.backend.insert_profile({
            "id": self.current_user.id,
            "name": name.strip(),
            "role": role,
            "phone": phone,
            "address": address,
            "avatar_url": None,
        })
        return UserProfile.from_dict(stored)

    def get_profile(self, user_id: Optional[str] = None) -> UserProfile:
        user_id = user_id or self.current_user.id
        return UserProfile.from_dict(with_retries(
            lambda: self.backend.get_profile(user_id),
            description=f"get profile {user_id}",
        ))

    def update_profile(self, fields: Dict[str, Any], user_id: Optional[str] = None) -> UserProfile:
        user_id = user_id or self.current_user.id
        if user_id != self.current_user.id:
            raise AuthorizationError("Profiles can only be edited by their owner")

        illegal = set(fields) - EDITABLE_FIELDS
        if illegal:
            raise ValidationError(sorted(illegal)[0], f"Fields cannot be changed: {', '.join(sorted(illegal))}")
        if "name" in fields and not (fields["name"] or "").strip():
            raise ValidationError("name", "Name is required")

        stored = self.backend.update_profile(user_id, dict(fields))
        logger.info(f"Profile {user_id} updated ({', '.join(sorted(fields))})")
        return UserProfile.from_dict(stored)

    def upload_avatar(self, data: bytes, filename: str) -> UserProfile:
        if self.blob_storage is None:
            raise ValidationError("avatar_url", "No blob storage configured for avatars")
        url = self.blob_storage.upload(data, filename, folder="avatars")
        return self.update_profile({"avatar_url": url})

"""Users service: canonical user records and their role satellites."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from ..repository import layout
from ..repository.errors import NotFoundError
from ..repository.generic import Collection, TreeRepository
from ..schema.standardize import satellite

_log = logging.getLogger("elearning.services.users")


@dataclass
class UsersService:
    repo: TreeRepository
    users: Collection = field(init=False)

    def __post_init__(self) -> None:
        self.users = self.repo.collection(layout.USERS, "user")

    def list_users(self) -> List[Dict[str, Any]]:
        return self.users.list()

    def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        return self.users.get(user_id)

    def create_user(self, data: Mapping[str, Any]) -> str:
        """Create a user and the satellite matching its role."""
        user_id = self.users.create(data)
        role = self.users.get(user_id)["role"]  # type: ignore[index]
        self.repo.write(satellite(role, user_id, data), layout.SATELLITE_BY_ROLE[role], user_id)
        return user_id

    def update_user(self, user_id: str, data: Mapping[str, Any]) -> bool:
        """Update a user; a role change moves the satellite to the new role."""
        before = self.users.get(user_id)
        if before is None:
            raise NotFoundError(self.repo.path(layout.USERS), user_id)
        self.users.update(user_id, data)
        after = self.users.get(user_id) or before
        if after["role"] != before["role"]:
            self.repo.remove(layout.SATELLITE_BY_ROLE[before["role"]], user_id)
            self.repo.write(satellite(after["role"], user_id, data), layout.SATELLITE_BY_ROLE[after["role"]], user_id)
            _log.info("moved satellite of %s from %s to %s", user_id, before["role"], after["role"])
        return True

    def delete_user(self, user_id: str) -> bool:
        self.users.delete(user_id)
        for node in layout.SATELLITE_BY_ROLE.values():
            self.repo.remove(node, user_id)
        return True

    def get_satellite(self, user_id: str) -> Optional[Dict[str, Any]]:
        user = self.users.get(user_id)
        if user is None:
            return None
        node = layout.SATELLITE_BY_ROLE.get(user["role"])
        if node is None:
            return None
        data = self.repo.read(node, user_id)
        return dict(data) if isinstance(data, Mapping) else None


__all__ = ["UsersService"]

import logging
from typing import List, Optional

from gamehub.config import settings
from gamehub.context import UserContext
from gamehub.data_service import ASCENDING, DESCENDING, DataService
from gamehub.errors import AuthorizationError, NotFoundError, ValidationError
from gamehub.records import group_out
from gamehub.schemas import GroupCreate, GroupOut

logger = logging.getLogger(__name__)

MOST_MEMBERS = [("member_count", DESCENDING), ("name", ASCENDING)]


class GroupService:
    def __init__(self, data: DataService, user: Optional[UserContext] = None):
        self.data = data
        self.user = user

    def _require_user(self) -> UserContext:
        if self.user is None:
            raise AuthorizationError("You must be signed in")
        return self.user

    def _member_ids(self) -> set:
        if self.user is None:
            return set()
        rows = self.data.select("group_members", {"user_id": self.user.user_id})
        return {row["group_id"] for row in rows}

    def _view(self, groups: List[dict]) -> List[GroupOut]:
        member_of = self._member_ids() if self.user else None
        return [group_out(g, g["id"] in member_of if member_of is not None else None) for g in groups]

    def _sync_member_count(self, group_id: int) -> dict:
        total = self.data.count("group_members", {"group_id": group_id})
        return self.data.update("groups", group_id, {"member_count": total})

    def find(self, name: str) -> dict:
        group = self.data.select_one("groups", {"name": (name or "").strip().lower()})
        if group is None:
            raise NotFoundError("Group not found")
        return group

    def list(self, search: Optional[str] = None) -> List[GroupOut]:
        """All groups, biggest first; ``search`` matches name or description."""
        groups = self.data.select("groups", order=MOST_MEMBERS)
        term = (search or "").strip().lower()
        if term:
            groups = [
                g for g in groups
                if term in g["name"].lower() or term in (g.get("description") or "").lower()
            ]
        return self._view(groups)

    def popular(self, limit: int = settings.POPULAR_GROUPS_LIMIT) -> List[GroupOut]:
        groups = self.data.select("groups", {"member_count": ("gte", 1)}, order=MOST_MEMBERS, limit=limit)
        return self._view(groups)

    def get(self, name: str) -> GroupOut:
        return self._view([self.find(name)])[0]

    def joined(self) -> List[GroupOut]:
        ids = self._member_ids()
        if not ids:
            return []
        return self._view(self.data.select("groups", {"id": ("in", ids)}, order=MOST_MEMBERS))

    def create(self, payload: GroupCreate) -> GroupOut:
        user = self._require_user()
        name = (payload.name or "").strip().lower()
        if not name:
            raise ValidationError("Group name required")
        if self.data.select_one("groups", {"name": name}) is not None:
            raise ValidationError("Group name taken")

        with self.data.transaction():
            group = self.data.insert(
                "groups",
                {
                    "name": name,
                    "description": (payload.description or "").strip(),
                    "image_url": payload.image_url,
                    "creator_id": user.user_id,
                    "member_count": 0,
                },
            )
            # The creator is the first member
            self.data.insert("group_members", {"group_id": group["id"], "user_id": user.user_id})
            group = self._sync_member_count(group["id"])
        logger.info(f"User {user.user_id} created group r/{name}")
        return group_out(group, True)

    def join(self, name: str) -> GroupOut:
        user = self._require_user()
        group = self.find(name)
        key = {"group_id": group["id"], "user_id": user.user_id}
        if self.data.select_one("group_members", key) is not None:
            raise ValidationError("You are already a member of this group")
        with self.data.transaction():
            self.data.insert("group_members", key)
            group = self._sync_member_count(group["id"])
        logger.info(f"User {user.user_id} joined r/{group['name']}")
        return group_out(group, True)

    def leave(self, name: str) -> GroupOut:
        user = self._require_user()
        group = self.find(name)
        with self.data.transaction():
            removed = self.data.delete("group_members", {"group_id": group["id"], "user_id": user.user_id})
            if not removed:
                raise NotFoundError("You are not a member of this group")
            group = self._sync_member_count(group["id"])
        logger.info(f"User {user.user_id} left r/{group['name']}")
        return group_out(group, False)

    def set_image(self, name: str, image_url: str) -> GroupOut:
        user = self._require_user()
        group = self.find(name)
        user.require_owner(group["creator_id"], "group")
        return self._view([self.data.update("groups", group["id"], {"image_url": image_url})])[0]

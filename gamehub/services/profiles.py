import logging
from datetime import datetime, timezone
from typing import Optional

from gamehub.config import settings
from gamehub.context import UserContext
from gamehub.data_service import DataService
from gamehub.errors import AuthorizationError, NotFoundError, ValidationError
from gamehub.records import profile_out
from gamehub.schemas import DashboardOut, DashboardStats, ProfileOut, ProfileUpdate
from gamehub.services.comments import CommentService
from gamehub.services.posts import PostService

logger = logging.getLogger(__name__)


class ProfileService:
    def __init__(self, data: DataService, user: Optional[UserContext] = None):
        self.data = data
        self.user = user

    def _require_user(self) -> UserContext:
        if self.user is None:
            raise AuthorizationError("You must be signed in")
        return self.user

    def _get(self, **filter_dict) -> dict:
        profile = self.data.select_one("profiles", filter_dict)
        if profile is None:
            raise NotFoundError("Profile not found")
        return profile

    def get(self, username: str) -> ProfileOut:
        return profile_out(self._get(username=username))

    def me(self) -> ProfileOut:
        return profile_out(self._get(user_id=self._require_user().user_id))

    def update(self, payload: ProfileUpdate) -> ProfileOut:
        user = self._require_user()
        current = self._get(user_id=user.user_id)

        patch = {}
        if payload.username is not None:
            username = payload.username.strip()
            if not username:
                raise ValidationError("Username is required")
            if username != current["username"]:
                if self.data.select_one("profiles", {"username": username}) is not None:
                    raise ValidationError("Username already taken")
                patch["username"] = username
        if payload.display_name is not None:
            patch["display_name"] = payload.display_name.strip() or None
        if payload.bio is not None:
            patch["bio"] = payload.bio.strip()
        if not patch:
            return profile_out(current)

        patch["updated_at"] = datetime.now(timezone.utc)
        logger.info(f"User {user.user_id} updated profile fields {sorted(patch)}")
        return profile_out(self.data.update("profiles", user.user_id, patch))

    def set_avatar(self, avatar_url: str) -> ProfileOut:
        user = self._require_user()
        self._get(user_id=user.user_id)
        updated = self.data.update(
            "profiles", user.user_id, {"avatar_url": avatar_url, "updated_at": datetime.now(timezone.utc)}
        )
        return profile_out(updated)

    def dashboard(self, limit: int = settings.DASHBOARD_LIMIT) -> DashboardOut:
        """Recent activity of the current user plus totals over all of it."""
        user = self._require_user()
        posts = PostService(self.data, user).by_author(user.user_id, limit=limit)
        comments = CommentService(self.data, user).by_author(user.user_id, limit=limit)

        all_posts = self.data.select("posts", {"author_id": user.user_id})
        stats = DashboardStats(
            total_posts=len(all_posts),
            total_upvotes=sum(p["upvotes"] or 0 for p in all_posts),
            total_comments=self.data.count("comments", {"author_id": user.user_id}),
            joined_groups=self.data.count("group_members", {"user_id": user.user_id}),
        )
        return DashboardOut(posts=posts, comments=comments, stats=stats)

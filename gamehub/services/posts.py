import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from gamehub.config import settings
from gamehub.context import UserContext
from gamehub.data_service import ASCENDING, DESCENDING, DataService
from gamehub.errors import AuthorizationError, NotFoundError, ValidationError
from gamehub.records import normalize_posts
from gamehub.schemas import PostCreate, PostOut, PostUpdate
from gamehub.trending import engagement_score, rank_trending

logger = logging.getLogger(__name__)

NEWEST_FIRST = [("created_at", DESCENDING), ("id", DESCENDING)]


def clean_tags(tags: Optional[Iterable[str]]) -> List[str]:
    """Trim tags and drop blanks and duplicates, keeping first occurrence."""
    cleaned = []
    for tag in tags or []:
        tag = (tag or "").strip()
        if tag and tag not in cleaned:
            cleaned.append(tag)
    return cleaned


class PostService:
    def __init__(self, data: DataService, user: Optional[UserContext] = None):
        self.data = data
        self.user = user

    @property
    def _viewer_id(self) -> Optional[int]:
        return self.user.user_id if self.user else None

    def _require_user(self) -> UserContext:
        if self.user is None:
            raise AuthorizationError("You must be signed in")
        return self.user

    def _get(self, post_id: int) -> dict:
        post = self.data.select_one("posts", {"id": post_id})
        if post is None:
            raise NotFoundError("Post not found")
        return post

    def _view(self, rows: List[dict]) -> List[PostOut]:
        return normalize_posts(self.data, rows, self._viewer_id)

    # ---------- feeds ----------

    def home(self, limit: int = settings.HOME_FEED_LIMIT) -> List[PostOut]:
        return self._view(self.data.select("posts", order=NEWEST_FIRST, limit=limit))

    def recent(self, limit: int = settings.RECENT_FEED_LIMIT) -> List[PostOut]:
        return self._view(self.data.select("posts", order=NEWEST_FIRST, limit=limit))

    def trending(self, limit: int = settings.TRENDING_FETCH_LIMIT) -> List[PostOut]:
        """Most upvoted posts, re-ordered by engagement score."""
        rows = self.data.select("posts", order=[("upvotes", DESCENDING), ("id", ASCENDING)], limit=limit)
        ranked = rank_trending(self._view(rows))
        for post in ranked:
            post.engagement_score = engagement_score(post)
        return ranked

    def by_group(self, group_id: int) -> List[PostOut]:
        return self._view(self.data.select("posts", {"group_id": group_id}, order=NEWEST_FIRST))

    def by_author(self, user_id: int, limit: Optional[int] = None) -> List[PostOut]:
        return self._view(self.data.select("posts", {"author_id": user_id}, order=NEWEST_FIRST, limit=limit))

    def get(self, post_id: int) -> PostOut:
        return self._view([self._get(post_id)])[0]

    # ---------- writes ----------

    def create(self, payload: PostCreate) -> PostOut:
        user = self._require_user()
        title = (payload.title or "").strip()
        if not title or payload.group_id is None:
            raise ValidationError("Please fill in title and select a group")
        if self.data.select_one("groups", {"id": payload.group_id}) is None:
            raise NotFoundError("Group not found")

        post_type = payload.post_type if payload.media_url else "text"
        tags = clean_tags(payload.tags)
        post = self.data.insert(
            "posts",
            {
                "title": title,
                "content": (payload.content or "").strip(),
                "group_id": payload.group_id,
                "author_id": user.user_id,
                "post_type": post_type,
                "media_url": payload.media_url,
                "tags": tags or None,
                "upvotes": 0,
                "downvotes": 0,
                "comment_count": 0,
            },
        )
        logger.info(f"User {user.user_id} created post {post['id']} in group {payload.group_id}")
        return self._view([post])[0]

    def update(self, post_id: int, payload: PostUpdate) -> PostOut:
        user = self._require_user()
        post = self._get(post_id)
        user.require_owner(post["author_id"], "post")

        patch = {}
        if payload.title is not None:
            title = payload.title.strip()
            if not title:
                raise ValidationError("Title is required")
            patch["title"] = title
        if payload.content is not None:
            patch["content"] = payload.content.strip()
        if payload.tags is not None:
            patch["tags"] = clean_tags(payload.tags) or None
        if not patch:
            return self._view([post])[0]

        patch["updated_at"] = datetime.now(timezone.utc)
        return self._view([self.data.update("posts", post_id, patch)])[0]

    def delete(self, post_id: int):
        user = self._require_user()
        post = self._get(post_id)
        user.require_owner(post["author_id"], "post")

        with self.data.transaction():
            self.data.delete("votes", {"post_id": post_id})
            # Replies first so no comment outlives its parent
            self.data.delete("comments", {"post_id": post_id, "parent_id": ("is_null", False)})
            self.data.delete("comments", {"post_id": post_id})
            self.data.delete("posts", {"id": post_id})
        logger.info(f"User {user.user_id} deleted post {post_id}")

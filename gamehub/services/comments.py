import logging
from datetime import datetime, timezone
from typing import List, Optional

from gamehub.comment_tree import build_comment_tree
from gamehub.context import UserContext
from gamehub.data_service import ASCENDING, DESCENDING, DataService
from gamehub.errors import AuthorizationError, NotFoundError, ValidationError
from gamehub.records import comment_out, normalize_comments
from gamehub.schemas import CommentOut, CommentThread, CommentTreeOut

logger = logging.getLogger(__name__)


class CommentService:
    def __init__(self, data: DataService, user: Optional[UserContext] = None):
        self.data = data
        self.user = user

    def _require_user(self) -> UserContext:
        if self.user is None:
            raise AuthorizationError("You must be signed in")
        return self.user

    def _get_post(self, post_id: int) -> dict:
        post = self.data.select_one("posts", {"id": post_id})
        if post is None:
            raise NotFoundError("Post not found")
        return post

    def _get_comment(self, comment_id: int) -> dict:
        comment = self.data.select_one("comments", {"id": comment_id})
        if comment is None:
            raise NotFoundError("Comment not found")
        return comment

    def _sync_comment_count(self, post_id: int):
        total = self.data.count("comments", {"post_id": post_id})
        self.data.update("posts", post_id, {"comment_count": total})

    def _top_level_ancestor(self, comment: dict) -> dict:
        seen = set()
        while comment["parent_id"] is not None and comment["id"] not in seen:
            seen.add(comment["id"])
            parent = self.data.select_one("comments", {"id": comment["parent_id"]})
            if parent is None:
                break
            comment = parent
        return comment

    def tree(self, post_id: int) -> CommentTreeOut:
        """Comments of a post grouped into top-level threads."""
        self._get_post(post_id)
        rows = self.data.select("comments", {"post_id": post_id}, order=[("created_at", ASCENDING), ("id", ASCENDING)])
        tree = build_comment_tree(normalize_comments(self.data, rows))
        threads = [CommentThread(comment=top, replies=replies) for top, replies in tree.threads()]
        return CommentTreeOut(post_id=post_id, total=len(tree), threads=threads)

    def create(self, post_id: int, content: str, parent_id: Optional[int] = None) -> CommentOut:
        user = self._require_user()
        content = (content or "").strip()
        if not content:
            raise ValidationError("Comment cannot be empty")
        self._get_post(post_id)

        if parent_id is not None:
            parent = self.data.select_one("comments", {"id": parent_id})
            if parent is None or parent["post_id"] != post_id:
                raise ValidationError("Parent comment not found on this post")
            # Replies always hang off a top-level comment
            parent_id = self._top_level_ancestor(parent)["id"]

        with self.data.transaction():
            comment = self.data.insert(
                "comments",
                {"content": content, "post_id": post_id, "author_id": user.user_id, "parent_id": parent_id},
            )
            self._sync_comment_count(post_id)
        logger.info(f"User {user.user_id} commented on post {post_id}")
        author = self.data.select_one("profiles", {"user_id": user.user_id})
        return comment_out(comment, author)

    def update(self, comment_id: int, content: str) -> CommentOut:
        user = self._require_user()
        comment = self._get_comment(comment_id)
        user.require_owner(comment["author_id"], "comment")

        content = (content or "").strip()
        if not content:
            raise ValidationError("Comment cannot be empty")

        updated = self.data.update(
            "comments", comment_id, {"content": content, "updated_at": datetime.now(timezone.utc)}
        )
        author = self.data.select_one("profiles", {"user_id": user.user_id})
        return comment_out(updated, author)

    def _descendant_levels(self, comment_id: int) -> List[List[int]]:
        levels = [[comment_id]]
        seen = {comment_id}
        while True:
            children = self.data.select("comments", {"parent_id": ("in", levels[-1])})
            ids = [c["id"] for c in children if c["id"] not in seen]
            if not ids:
                return levels
            seen.update(ids)
            levels.append(ids)

    def delete(self, comment_id: int) -> int:
        """Delete a comment together with its replies; returns rows removed."""
        user = self._require_user()
        comment = self._get_comment(comment_id)
        user.require_owner(comment["author_id"], "comment")

        removed = 0
        with self.data.transaction():
            for ids in reversed(self._descendant_levels(comment_id)):
                removed += self.data.delete("comments", {"id": ("in", ids)})
            self._sync_comment_count(comment["post_id"])
        logger.info(f"User {user.user_id} deleted comment {comment_id} ({removed} rows)")
        return removed

    def by_author(self, user_id: int, limit: Optional[int] = None) -> List[CommentOut]:
        rows = self.data.select(
            "comments", {"author_id": user_id}, order=[("created_at", DESCENDING), ("id", DESCENDING)], limit=limit
        )
        return normalize_comments(self.data, rows)

"""Normalization of raw data service records into typed views.

Raw records are plain dicts whose joins may be missing (a deleted profile, a
post without a group). This is the one place that fills in defaults; callers
past this point work with fully populated schema objects.
"""
from typing import Dict, Iterable, List, Optional

from gamehub.data_service import DataService
from gamehub.schemas import (
    CommentOut,
    GroupOut,
    GroupSummary,
    PostOut,
    ProfileOut,
    ProfileSummary,
)


def profile_summary(profile: Optional[dict]) -> ProfileSummary:
    if not profile:
        return ProfileSummary()
    return ProfileSummary(
        username=profile.get("username") or "unknown",
        display_name=profile.get("display_name") or profile.get("username"),
        avatar_url=profile.get("avatar_url"),
    )


def profile_out(profile: dict) -> ProfileOut:
    return ProfileOut(**{k: profile.get(k) for k in ProfileOut.model_fields})


def group_out(group: dict, is_member: Optional[bool] = None) -> GroupOut:
    data = {k: group.get(k) for k in GroupOut.model_fields if k != "is_member"}
    data["member_count"] = data["member_count"] or 0
    return GroupOut(**data, is_member=is_member)


def post_out(post: dict, author: Optional[dict] = None, group: Optional[dict] = None, user_vote: int = 0) -> PostOut:
    upvotes = post.get("upvotes") or 0
    downvotes = post.get("downvotes") or 0
    return PostOut(
        id=post["id"],
        title=post["title"],
        content=post.get("content"),
        media_url=post.get("media_url"),
        post_type=post.get("post_type") or "text",
        tags=post.get("tags") or [],
        upvotes=upvotes,
        downvotes=downvotes,
        comment_count=post.get("comment_count") or 0,
        net_score=upvotes - downvotes,
        created_at=post["created_at"],
        updated_at=post.get("updated_at"),
        author_id=post.get("author_id"),
        author=profile_summary(author),
        group=GroupSummary(id=group["id"], name=group["name"]) if group else None,
        user_vote=user_vote,
    )


def comment_out(comment: dict, author: Optional[dict] = None) -> CommentOut:
    updated_at = comment.get("updated_at")
    return CommentOut(
        id=comment["id"],
        content=comment["content"],
        post_id=comment["post_id"],
        parent_id=comment.get("parent_id"),
        author_id=comment.get("author_id"),
        created_at=comment["created_at"],
        updated_at=updated_at,
        edited=updated_at is not None and updated_at != comment["created_at"],
        author=profile_summary(author),
    )


def _index(rows: Iterable[dict], key: str) -> Dict:
    return {row[key]: row for row in rows}


def load_profiles(data: DataService, user_ids: Iterable[int]) -> Dict[int, dict]:
    ids = {i for i in user_ids if i is not None}
    if not ids:
        return {}
    return _index(data.select("profiles", {"user_id": ("in", ids)}), "user_id")


def load_groups(data: DataService, group_ids: Iterable[int]) -> Dict[int, dict]:
    ids = {i for i in group_ids if i is not None}
    if not ids:
        return {}
    return _index(data.select("groups", {"id": ("in", ids)}), "id")


def load_user_votes(data: DataService, user_id: Optional[int], post_ids: Iterable[int]) -> Dict[int, int]:
    ids = set(post_ids)
    if user_id is None or not ids:
        return {}
    rows = data.select("votes", {"user_id": user_id, "post_id": ("in", ids)})
    return {row["post_id"]: row["vote_type"] for row in rows}


def normalize_posts(data: DataService, posts: List[dict], user_id: Optional[int] = None) -> List[PostOut]:
    """Attach author, group and the viewer's vote to raw post records."""
    profiles = load_profiles(data, (p.get("author_id") for p in posts))
    groups = load_groups(data, (p.get("group_id") for p in posts))
    votes = load_user_votes(data, user_id, (p["id"] for p in posts))
    return [
        post_out(p, profiles.get(p.get("author_id")), groups.get(p.get("group_id")), votes.get(p["id"], 0))
        for p in posts
    ]


def normalize_comments(data: DataService, comments: List[dict]) -> List[CommentOut]:
    profiles = load_profiles(data, (c.get("author_id") for c in comments))
    return [comment_out(c, profiles.get(c.get("author_id"))) for c in comments]

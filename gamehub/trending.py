from typing import Any, List, Sequence


def _count(post: Any, name: str) -> int:
    value = post.get(name) if isinstance(post, dict) else getattr(post, name, None)
    return value or 0


def engagement_score(post: Any) -> int:
    """Net score plus two points per comment."""
    net = _count(post, "upvotes") - _count(post, "downvotes")
    return net + _count(post, "comment_count") * 2


def rank_trending(posts: Sequence[Any]) -> List[Any]:
    """Order posts by engagement, highest first.

    Posts with equal scores keep the order they were fetched in.
    """
    return sorted(posts, key=engagement_score, reverse=True)

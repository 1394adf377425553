"""Assemble one post's flat comment list into a parent/reply display tree.

Comments are stored flat with an optional ``parent_id``. The display shows
top-level comments with their replies one level underneath; anything deeper
(a reply to a reply) is flattened under its top-level ancestor.
"""
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Optional


def _field(comment: Any, name: str):
    if isinstance(comment, dict):
        return comment.get(name)
    return getattr(comment, name, None)


def _created_key(comment):
    created = _field(comment, "created_at")
    # Comments without a timestamp go last
    return (0, created) if created is not None else (1, 0)


def _by_created(comments: List[Any]) -> List[Any]:
    # sorted() is stable, equal timestamps keep their input order
    return sorted(comments, key=_created_key)


class CommentTree:
    """Comments of a single post, partitioned for display.

    ``top_level`` holds comments without a parent. ``replies_by_parent`` maps
    a comment id to its direct replies, so every reply listed under a key has
    that key as its ``parent_id``. ``orphans`` are replies whose parent is not
    in the list; they are never displayed.
    """

    def __init__(self, top_level, replies_by_parent, orphans):
        self.top_level: List[Any] = top_level
        self.replies_by_parent: Dict[Any, List[Any]] = replies_by_parent
        self.orphans: List[Any] = orphans
        self._parents = {}
        for parent_id, replies in replies_by_parent.items():
            for reply in replies:
                self._parents[_field(reply, "id")] = parent_id

    def __len__(self):
        # Only what threads() displays; replies under orphans are not counted
        return len(self.top_level) + sum(len(replies) for _, replies in self.threads())

    def replies_for(self, comment_id) -> List[Any]:
        return self.replies_by_parent.get(comment_id, [])

    def ancestor_of(self, comment_id) -> Optional[Any]:
        """Id of the top-level comment a comment hangs under.

        Top-level comments are their own ancestor. Returns None for ids that
        are not part of the displayed tree.
        """
        top_ids = {_field(c, "id") for c in self.top_level}
        seen = set()
        current = comment_id
        while current not in top_ids:
            if current in seen or current not in self._parents:
                return None
            seen.add(current)
            current = self._parents[current]
        return current

    def thread(self, top_id) -> List[Any]:
        """All descendants of a top-level comment, flattened and time ordered."""
        collected = []
        pending = [top_id]
        seen = {top_id}
        while pending:
            for reply in self.replies_for(pending.pop()):
                reply_id = _field(reply, "id")
                if reply_id in seen:
                    continue
                seen.add(reply_id)
                collected.append(reply)
                pending.append(reply_id)
        return _by_created(collected)

    def threads(self):
        """Yield ``(top_level_comment, flattened_replies)`` pairs in display order."""
        for comment in self.top_level:
            yield comment, self.thread(_field(comment, "id"))


def build_comment_tree(comments: Iterable[Any]) -> CommentTree:
    """Partition comments (dicts or objects with ``id``, ``parent_id`` and
    ``created_at``) into a :class:`CommentTree`."""
    comments = list(comments)
    ids = {_field(c, "id") for c in comments}

    top_level = []
    replies = defaultdict(list)
    orphans = []
    for comment in comments:
        parent_id = _field(comment, "parent_id")
        if parent_id is None:
            top_level.append(comment)
        elif parent_id in ids and parent_id != _field(comment, "id"):
            replies[parent_id].append(comment)
        else:
            orphans.append(comment)

    replies_by_parent = {key: _by_created(value) for key, value in replies.items()}
    return CommentTree(_by_created(top_level), replies_by_parent, orphans)

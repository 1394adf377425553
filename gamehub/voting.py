"""Vote tallying for a single post.

A user holds at most one vote per post. Clicking the same direction again
retracts the vote; clicking the other direction moves it.
"""
from enum import IntEnum
from typing import NamedTuple, Optional


class VoteState(IntEnum):
    NONE = 0
    UP = 1
    DOWN = -1

    @classmethod
    def from_vote_type(cls, vote_type: Optional[int]) -> "VoteState":
        """Map a stored ``vote_type`` (1, -1 or no row) to a state."""
        if vote_type is None:
            return cls.NONE
        return cls(vote_type)


class VoteAction(IntEnum):
    UP = 1
    DOWN = -1


class VoteTally(NamedTuple):
    upvotes: int
    downvotes: int
    state: VoteState = VoteState.NONE

    @property
    def net_score(self) -> int:
        return self.upvotes - self.downvotes


def _bump(tally: VoteTally, direction: int, delta: int) -> VoteTally:
    if direction == VoteState.UP:
        return tally._replace(upvotes=max(tally.upvotes + delta, 0))
    return tally._replace(downvotes=max(tally.downvotes + delta, 0))


def apply_vote(tally: VoteTally, action: VoteAction) -> VoteTally:
    """Return the tally after the user clicks ``action``.

    - same direction as the current state: retract, state becomes NONE
    - opposite direction: move the vote from one counter to the other
    - no current vote: count the new one
    """
    action = VoteAction(action)
    state = VoteState(tally.state)

    if state == action:
        return _bump(tally, state, -1)._replace(state=VoteState.NONE)

    if state != VoteState.NONE:
        tally = _bump(tally, state, -1)
    return _bump(tally, action, 1)._replace(state=VoteState(action))

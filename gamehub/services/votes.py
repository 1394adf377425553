import logging

from gamehub.context import UserContext
from gamehub.data_service import DataService
from gamehub.errors import AuthorizationError, NotFoundError, PersistenceError
from gamehub.voting import VoteAction, VoteState, VoteTally, apply_vote

logger = logging.getLogger(__name__)


class VoteController:
    """Holds one user's local view of a post's vote tally.

    ``vote`` updates the local tally first and then writes it through. If the
    write fails the local tally goes back to what it was and the error
    propagates to the caller; nothing is retried.
    """

    def __init__(self, data: DataService, post_id: int, user: UserContext, tally: VoteTally):
        self.data = data
        self.post_id = post_id
        self.user = user
        self.tally = tally

    @classmethod
    def load(cls, data: DataService, post_id: int, user: UserContext) -> "VoteController":
        post = data.select_one("posts", {"id": post_id})
        if post is None:
            raise NotFoundError("Post not found")
        existing = data.select_one("votes", {"post_id": post_id, "user_id": user.user_id})
        state = VoteState.from_vote_type(existing["vote_type"] if existing else None)
        return cls(data, post_id, user, VoteTally(post["upvotes"] or 0, post["downvotes"] or 0, state))

    def vote(self, action: VoteAction) -> VoteTally:
        previous = self.tally
        self.tally = apply_vote(previous, action)
        try:
            self._persist(self.tally.state)
        except (AuthorizationError, NotFoundError, PersistenceError) as e:
            logger.warning(f"Vote on post {self.post_id} by user {self.user.user_id} rolled back: {e.message}")
            self.tally = previous
            raise
        logger.info(f"User {self.user.user_id} vote on post {self.post_id} is now {self.tally.state.name}")
        return self.tally

    def _persist(self, state: VoteState):
        key = {"post_id": self.post_id, "user_id": self.user.user_id}
        # Vote row and post counters land together or not at all
        with self.data.transaction():
            if state == VoteState.NONE:
                self.data.delete("votes", key)
            else:
                self.data.upsert("votes", ("post_id", "user_id"), {**key, "vote_type": int(state)})
            self._sync_counters()

    def _sync_counters(self):
        # Counters follow the vote rows, whoever wrote them
        upvotes = self.data.count("votes", {"post_id": self.post_id, "vote_type": int(VoteState.UP)})
        downvotes = self.data.count("votes", {"post_id": self.post_id, "vote_type": int(VoteState.DOWN)})
        self.data.update("posts", self.post_id, {"upvotes": upvotes, "downvotes": downvotes})

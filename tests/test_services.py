import pytest

from gamehub.data_service import DataService
from gamehub.errors import AuthorizationError, NotFoundError, PersistenceError, ValidationError
from gamehub.schemas import GroupCreate, PostCreate, PostUpdate, ProfileUpdate
from gamehub.services.comments import CommentService
from gamehub.services.groups import GroupService
from gamehub.services.posts import PostService, clean_tags
from gamehub.services.profiles import ProfileService
from gamehub.services.votes import VoteController
from gamehub.voting import VoteAction, VoteState, VoteTally


class UnavailableVotes(DataService):
    def upsert(self, table, unique_key, record):
        raise PersistenceError("vote store unavailable")

    def delete(self, table, filter_dict):
        raise PersistenceError("vote store unavailable")


class FailingCounterSync(DataService):
    def update(self, table, id, patch):
        if table == "posts":
            raise PersistenceError("posts table unavailable")
        return super().update(table, id, patch)


@pytest.fixture
def alice(make_user):
    return make_user("alice")


@pytest.fixture
def bob(make_user):
    return make_user("bob")


@pytest.fixture
def retro(make_group, alice):
    return make_group("retro", alice)


# ---------- votes ----------

def test_vote_writes_one_row_and_syncs_counters(data, alice, bob, retro, make_post):
    post = make_post(alice, retro)

    VoteController.load(data, post["id"], alice).vote(VoteAction.UP)
    controller = VoteController.load(data, post["id"], bob)
    tally = controller.vote(VoteAction.DOWN)

    assert tally == VoteTally(1, 1, VoteState.DOWN)
    stored = data.select_one("posts", {"id": post["id"]})
    assert (stored["upvotes"], stored["downvotes"]) == (1, 1)
    assert data.count("votes", {"post_id": post["id"], "user_id": bob.user_id}) == 1


def test_changing_and_retracting_a_vote(data, alice, retro, make_post):
    post = make_post(alice, retro)
    controller = VoteController.load(data, post["id"], alice)

    controller.vote(VoteAction.UP)
    assert controller.vote(VoteAction.DOWN) == VoteTally(0, 1, VoteState.DOWN)
    assert data.select_one("votes", {"post_id": post["id"], "user_id": alice.user_id})["vote_type"] == -1

    assert controller.vote(VoteAction.DOWN) == VoteTally(0, 0, VoteState.NONE)
    assert data.count("votes", {"post_id": post["id"]}) == 0


def test_failed_vote_rolls_back_local_tally(db_session, alice, retro, make_post):
    post = make_post(alice, retro, upvotes=5, downvotes=2)
    controller = VoteController.load(UnavailableVotes(db_session), post["id"], alice)
    before = controller.tally

    with pytest.raises(PersistenceError):
        controller.vote(VoteAction.UP)

    assert controller.tally == before == VoteTally(5, 2, VoteState.NONE)
    stored = DataService(db_session).select_one("posts", {"id": post["id"]})
    assert (stored["upvotes"], stored["downvotes"]) == (5, 2)


def test_failed_retraction_rolls_back(db_session, data, alice, retro, make_post):
    post = make_post(alice, retro)
    VoteController.load(data, post["id"], alice).vote(VoteAction.UP)

    controller = VoteController.load(UnavailableVotes(db_session), post["id"], alice)
    with pytest.raises(PersistenceError):
        controller.vote(VoteAction.UP)
    assert controller.tally == VoteTally(1, 0, VoteState.UP)


def test_failed_counter_sync_leaves_no_vote_row(db_session, alice, retro, make_post):
    post = make_post(alice, retro, upvotes=2)
    controller = VoteController.load(FailingCounterSync(db_session), post["id"], alice)

    with pytest.raises(PersistenceError):
        controller.vote(VoteAction.UP)

    assert controller.tally == VoteTally(2, 0, VoteState.NONE)
    data = DataService(db_session)
    assert data.count("votes") == 0
    stored = data.select_one("posts", {"id": post["id"]})
    assert (stored["upvotes"], stored["downvotes"]) == (2, 0)


def test_failed_counter_sync_keeps_existing_vote(db_session, data, alice, retro, make_post):
    post = make_post(alice, retro)
    VoteController.load(data, post["id"], alice).vote(VoteAction.UP)

    controller = VoteController.load(FailingCounterSync(db_session), post["id"], alice)
    with pytest.raises(PersistenceError):
        controller.vote(VoteAction.UP)

    assert controller.tally == VoteTally(1, 0, VoteState.UP)
    assert data.select_one("votes", {"post_id": post["id"], "user_id": alice.user_id})["vote_type"] == 1


def test_vote_on_missing_post(data, alice):
    with pytest.raises(NotFoundError):
        VoteController.load(data, 999, alice)


# ---------- comments ----------

def test_comment_tree_from_service(data, alice, bob, retro, make_post):
    post = make_post(alice, retro)
    comments = CommentService(data, alice)
    first = comments.create(post["id"], "first")
    second = CommentService(data, bob).create(post["id"], "second")
    reply = CommentService(data, bob).create(post["id"], "reply to first", parent_id=first.id)

    tree = comments.tree(post["id"])
    assert tree.total == 3
    assert [t.comment.id for t in tree.threads] == [first.id, second.id]
    assert [r.id for r in tree.threads[0].replies] == [reply.id]
    assert tree.threads[0].comment.author.display_name == "Alice"
    assert data.select_one("posts", {"id": post["id"]})["comment_count"] == 3


def test_reply_to_reply_hangs_off_top_level(data, alice, bob, retro, make_post):
    post = make_post(alice, retro)
    top = CommentService(data, alice).create(post["id"], "top")
    reply = CommentService(data, bob).create(post["id"], "reply", parent_id=top.id)
    nested = CommentService(data, alice).create(post["id"], "reply to reply", parent_id=reply.id)

    assert nested.parent_id == top.id


def test_reply_to_comment_on_other_post(data, alice, retro, make_post):
    first = make_post(alice, retro, title="first")
    second = make_post(alice, retro, title="second")
    top = CommentService(data, alice).create(first["id"], "top")

    with pytest.raises(ValidationError):
        CommentService(data, alice).create(second["id"], "cross", parent_id=top.id)


def test_empty_comment_is_rejected(data, alice, retro, make_post):
    post = make_post(alice, retro)
    with pytest.raises(ValidationError):
        CommentService(data, alice).create(post["id"], "   ")
    assert data.count("comments") == 0


def test_edit_marks_comment_edited(data, alice, retro, make_post):
    post = make_post(alice, retro)
    service = CommentService(data, alice)
    created = service.create(post["id"], "typo")
    assert created.edited is False

    edited = service.update(created.id, "fixed")
    assert edited.content == "fixed"
    assert edited.edited is True


def test_non_author_cannot_delete_comment(data, alice, bob, retro, make_post):
    post = make_post(alice, retro)
    comment = CommentService(data, alice).create(post["id"], "mine")
    before = data.select("comments")

    with pytest.raises(AuthorizationError):
        CommentService(data, bob).delete(comment.id)
    with pytest.raises(AuthorizationError):
        CommentService(data, bob).update(comment.id, "hijacked")

    assert data.select("comments") == before


def test_deleting_top_level_removes_thread(data, alice, bob, retro, make_post):
    post = make_post(alice, retro)
    top = CommentService(data, alice).create(post["id"], "top")
    CommentService(data, bob).create(post["id"], "reply", parent_id=top.id)
    other = CommentService(data, bob).create(post["id"], "other")

    assert CommentService(data, alice).delete(top.id) == 2
    assert [c["id"] for c in data.select("comments")] == [other.id]
    assert data.select_one("posts", {"id": post["id"]})["comment_count"] == 1


# ---------- posts ----------

def test_clean_tags():
    assert clean_tags([" rpg ", "fps", "rpg", "", "  "]) == ["rpg", "fps"]
    assert clean_tags(None) == []


def test_create_post_requires_title_and_group(data, alice, retro):
    posts = PostService(data, alice)
    with pytest.raises(ValidationError):
        posts.create(PostCreate(title="  ", group_id=retro["id"]))
    with pytest.raises(ValidationError):
        posts.create(PostCreate(title="Hello"))
    assert data.count("posts") == 0


def test_create_post_normalizes_fields(data, alice, retro):
    post = PostService(data, alice).create(
        PostCreate(title=" Speedrun ", group_id=retro["id"], tags=["any%", "any%", " glitch "], post_type="video")
    )
    assert post.title == "Speedrun"
    assert post.tags == ["any%", "glitch"]
    # No media reference means a text post
    assert post.post_type == "text"
    assert post.group.name == "retro"
    assert post.author.username == "alice"


def test_only_author_edits_or_deletes_post(data, alice, bob, retro, make_post):
    post = make_post(alice, retro)
    with pytest.raises(AuthorizationError):
        PostService(data, bob).update(post["id"], PostUpdate(title="mine now"))
    with pytest.raises(AuthorizationError):
        PostService(data, bob).delete(post["id"])

    assert PostService(data, alice).update(post["id"], PostUpdate(title="Renamed")).title == "Renamed"
    PostService(data, alice).delete(post["id"])
    assert data.count("posts") == 0


def test_trending_feed_ranks_by_engagement(data, alice, retro, make_post):
    make_post(alice, retro, title="votes", upvotes=10, comment_count=2)
    make_post(alice, retro, title="talk", upvotes=5, comment_count=10)

    ranked = PostService(data, alice).trending()
    assert [p.title for p in ranked] == ["talk", "votes"]
    assert [p.engagement_score for p in ranked] == [25, 14]


def test_post_view_includes_viewer_vote(data, alice, bob, retro, make_post):
    post = make_post(alice, retro)
    VoteController.load(data, post["id"], bob).vote(VoteAction.DOWN)

    assert PostService(data, bob).get(post["id"]).user_vote == -1
    assert PostService(data, alice).get(post["id"]).user_vote == 0
    assert PostService(data).get(post["id"]).net_score == -1


# ---------- groups ----------

def test_group_names_are_lowercase_and_unique(data, alice, bob):
    group = GroupService(data, alice).create(GroupCreate(name="  Indie Devs ", description="games"))
    assert group.name == "indie devs"
    assert group.member_count == 1
    assert group.is_member is True

    with pytest.raises(ValidationError):
        GroupService(data, bob).create(GroupCreate(name="INDIE DEVS"))
    with pytest.raises(ValidationError):
        GroupService(data, bob).create(GroupCreate(name=" "))


def test_join_and_leave_update_member_count(data, alice, bob, retro):
    groups = GroupService(data, bob)
    assert groups.join("retro").member_count == 2
    with pytest.raises(ValidationError):
        groups.join("retro")

    assert [g.name for g in groups.joined()] == ["retro"]
    assert groups.leave("retro").member_count == 1
    with pytest.raises(NotFoundError):
        groups.leave("retro")


def test_group_search_and_popular(data, alice, bob, make_group):
    make_group("retro", alice)
    make_group("shooters", bob)
    empty = data.insert("groups", {"name": "ghost town", "description": "nobody here", "member_count": 0})

    assert [g.name for g in GroupService(data).list("SHOOT")] == ["shooters"]
    assert [g.name for g in GroupService(data).list("all about")] == ["retro", "shooters"]
    assert empty["name"] not in [g.name for g in GroupService(data).popular()]


# ---------- profiles ----------

def test_profile_update_checks_username(data, alice, bob):
    with pytest.raises(ValidationError):
        ProfileService(data, alice).update(ProfileUpdate(username="bob"))

    profile = ProfileService(data, alice).update(ProfileUpdate(display_name="Al", bio=" hello "))
    assert profile.display_name == "Al"
    assert profile.bio == "hello"


def test_dashboard_stats(data, alice, bob, retro, make_post):
    post = make_post(alice, retro, upvotes=3)
    make_post(alice, retro, upvotes=4)
    CommentService(data, alice).create(post["id"], "self reply")
    GroupService(data, bob).join("retro")

    dashboard = ProfileService(data, alice).dashboard()
    assert dashboard.stats.total_posts == 2
    assert dashboard.stats.total_upvotes == 7
    assert dashboard.stats.total_comments == 1
    assert dashboard.stats.joined_groups == 1
    assert len(dashboard.posts) == 2

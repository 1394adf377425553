from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field

PostType = Literal["text", "image", "video"]


class UserCreate(BaseModel):
    username: str
    email: EmailStr
    password: str


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


# ---------- Profiles ----------

class ProfileSummary(BaseModel):
    """Author details embedded in posts and comments."""
    username: str = "unknown"
    display_name: Optional[str] = "Unknown User"
    avatar_url: Optional[str] = None


class ProfileOut(BaseModel):
    user_id: int
    username: str
    display_name: Optional[str] = None
    bio: Optional[str] = None
    avatar_url: Optional[str] = None
    created_at: Optional[datetime] = None


class ProfileUpdate(BaseModel):
    username: Optional[str] = None
    display_name: Optional[str] = None
    bio: Optional[str] = None


class UserOut(BaseModel):
    id: int
    email: str
    profile: ProfileOut


# ---------- Groups ----------

class GroupCreate(BaseModel):
    name: str
    description: str = ""
    image_url: Optional[str] = None


class GroupSummary(BaseModel):
    id: int
    name: str


class GroupOut(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    member_count: int = 0
    creator_id: Optional[int] = None
    created_at: Optional[datetime] = None
    is_member: Optional[bool] = None


# ---------- Posts & votes ----------

class PostCreate(BaseModel):
    title: str
    content: str = ""
    group_id: Optional[int] = None
    tags: List[str] = []
    media_url: Optional[str] = None
    post_type: PostType = "text"


class PostUpdate(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    tags: Optional[List[str]] = None


class PostOut(BaseModel):
    id: int
    title: str
    content: Optional[str] = None
    media_url: Optional[str] = None
    post_type: PostType = "text"
    tags: List[str] = []
    upvotes: int = 0
    downvotes: int = 0
    comment_count: int = 0
    net_score: int = 0
    created_at: datetime
    updated_at: Optional[datetime] = None
    author_id: Optional[int] = None
    author: ProfileSummary = Field(default_factory=ProfileSummary)
    group: Optional[GroupSummary] = None
    user_vote: int = 0
    engagement_score: Optional[int] = None


class VoteCreate(BaseModel):
    vote: Literal[1, -1]


class VoteOut(BaseModel):
    post_id: int
    upvotes: int
    downvotes: int
    user_vote: int
    net_score: int


class MediaOut(BaseModel):
    media_url: str
    post_type: PostType


# ---------- Comments ----------

class CommentCreate(BaseModel):
    content: str
    parent_id: Optional[int] = None


class CommentUpdate(BaseModel):
    content: str


class CommentOut(BaseModel):
    id: int
    content: str
    post_id: int
    parent_id: Optional[int] = None
    author_id: Optional[int] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    edited: bool = False
    author: ProfileSummary = Field(default_factory=ProfileSummary)


class CommentThread(BaseModel):
    comment: CommentOut
    replies: List[CommentOut] = []


class CommentTreeOut(BaseModel):
    post_id: int
    total: int
    threads: List[CommentThread] = []


# ---------- Dashboard ----------

class DashboardStats(BaseModel):
    total_posts: int = 0
    total_upvotes: int = 0
    total_comments: int = 0
    joined_groups: int = 0


class DashboardOut(BaseModel):
    posts: List[PostOut] = []
    comments: List[CommentOut] = []
    stats: DashboardStats

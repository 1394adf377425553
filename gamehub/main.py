import logging
from typing import List, Optional

from fastapi import Depends, FastAPI, File, HTTPException, Request, UploadFile, status
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from fastapi.staticfiles import StaticFiles
from sqlalchemy.orm import Session

from gamehub.config import settings
from gamehub.context import UserContext
from gamehub.data_service import DataService
from gamehub.database import engine, get_db
from gamehub.errors import GameHubError
from gamehub.models import Base
from gamehub.schemas import (
    CommentCreate,
    CommentOut,
    CommentTreeOut,
    CommentUpdate,
    DashboardOut,
    GroupCreate,
    GroupOut,
    MediaOut,
    PostCreate,
    PostOut,
    PostUpdate,
    ProfileOut,
    ProfileUpdate,
    Token,
    UserCreate,
    UserOut,
    VoteCreate,
    VoteOut,
)
from gamehub.services.comments import CommentService
from gamehub.services.groups import GroupService
from gamehub.services.posts import PostService
from gamehub.services.profiles import ProfileService
from gamehub.services.votes import VoteController
from gamehub.storage import MediaStorage, media_kind
from gamehub.utils import create_access_token, hash_password, verify_access_token, verify_password
from gamehub.voting import VoteAction

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

app = FastAPI(title="GameHub API")

Base.metadata.create_all(bind=engine)

app.mount("/media", StaticFiles(directory=settings.MEDIA_ROOT, check_dir=False), name="media")

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="login")
optional_oauth2_scheme = OAuth2PasswordBearer(tokenUrl="login", auto_error=False)


@app.exception_handler(GameHubError)
async def gamehub_error_handler(request: Request, exc: GameHubError):
    logger.info(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# ---------- Dependencies ----------

def get_data(db: Session = Depends(get_db)) -> DataService:
    return DataService(db)


def get_storage() -> MediaStorage:
    return MediaStorage()


def _user_from_token(token: str, data: DataService) -> UserContext:
    payload = verify_access_token(token)
    if payload is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    user = data.select_one("users", {"email": payload.get("sub")})
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return UserContext(user_id=user["id"], username=user["username"], email=user["email"])


def get_current_user(token: str = Depends(oauth2_scheme), data: DataService = Depends(get_data)) -> UserContext:
    return _user_from_token(token, data)


def get_optional_user(
    token: Optional[str] = Depends(optional_oauth2_scheme), data: DataService = Depends(get_data)
) -> Optional[UserContext]:
    if not token:
        return None
    return _user_from_token(token, data)


def _store_upload(storage: MediaStorage, bucket: str, upload: UploadFile) -> str:
    try:
        return storage.save(bucket, upload.filename, upload.file)
    finally:
        upload.file.close()


# ---------- Users ----------

@app.post("/register", tags=['Users'])
def register_user(user: UserCreate, data: DataService = Depends(get_data)):
    # Check if the email or username is already registered
    if data.select_one("users", {"email": user.email}):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already registered")
    username = user.username.strip()
    if not username:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Username is required")
    if data.select_one("users", {"username": username}) or data.select_one("profiles", {"username": username}):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Username already taken")

    # User and profile are created together
    with data.transaction():
        new_user = data.insert(
            "users", {"username": username, "email": user.email, "hashed_password": hash_password(user.password)}
        )
        data.insert("profiles", {"user_id": new_user["id"], "username": username, "display_name": username})
    logger.info(f"Registered user {new_user['id']}")

    return {"message": "User registered successfully", "user_id": new_user["id"]}


@app.post("/login", response_model=Token, tags=['Users'])
def login_user(form_data: OAuth2PasswordRequestForm = Depends(), data: DataService = Depends(get_data)):
    user = data.select_one("users", {"username": form_data.username})

    if not user or not verify_password(form_data.password, user["hashed_password"]):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    # Token subject is the user's email
    return Token(access_token=create_access_token(data={"sub": user["email"]}))


@app.get("/users/me", response_model=UserOut, tags=['Users'])
def read_users_me(user: UserContext = Depends(get_current_user), data: DataService = Depends(get_data)):
    return UserOut(id=user.user_id, email=user.email, profile=ProfileService(data, user).me())


@app.get("/users/me/groups", response_model=List[GroupOut], tags=['Groups'])
def my_groups(user: UserContext = Depends(get_current_user), data: DataService = Depends(get_data)):
    return GroupService(data, user).joined()


# ---------- Profiles ----------

@app.get("/profiles/me", response_model=ProfileOut, tags=['Profiles'])
def read_my_profile(user: UserContext = Depends(get_current_user), data: DataService = Depends(get_data)):
    return ProfileService(data, user).me()


@app.patch("/profiles/me", response_model=ProfileOut, tags=['Profiles'])
def update_my_profile(
    payload: ProfileUpdate, user: UserContext = Depends(get_current_user), data: DataService = Depends(get_data)
):
    return ProfileService(data, user).update(payload)


@app.post("/profiles/me/avatar", response_model=ProfileOut, tags=['Profiles'])
def upload_avatar(
    file: UploadFile = File(...),
    user: UserContext = Depends(get_current_user),
    data: DataService = Depends(get_data),
    storage: MediaStorage = Depends(get_storage),
):
    return ProfileService(data, user).set_avatar(_store_upload(storage, "avatars", file))


@app.get("/profiles/{username}", response_model=ProfileOut, tags=['Profiles'])
def read_profile(username: str, data: DataService = Depends(get_data)):
    return ProfileService(data).get(username)


@app.get("/profiles/{username}/posts", response_model=List[PostOut], tags=['Profiles'])
def read_profile_posts(
    username: str, data: DataService = Depends(get_data), user: Optional[UserContext] = Depends(get_optional_user)
):
    profile = ProfileService(data).get(username)
    return PostService(data, user).by_author(profile.user_id)


@app.get("/dashboard", response_model=DashboardOut, tags=['Profiles'])
def dashboard(user: UserContext = Depends(get_current_user), data: DataService = Depends(get_data)):
    return ProfileService(data, user).dashboard()


# ---------- Groups ----------

@app.get("/groups", response_model=List[GroupOut], tags=['Groups'])
def list_groups(
    search: Optional[str] = None,
    data: DataService = Depends(get_data),
    user: Optional[UserContext] = Depends(get_optional_user),
):
    return GroupService(data, user).list(search)


@app.get("/groups/popular", response_model=List[GroupOut], tags=['Groups'])
def popular_groups(data: DataService = Depends(get_data)):
    return GroupService(data).popular()


@app.post("/groups", response_model=GroupOut, status_code=status.HTTP_201_CREATED, tags=['Groups'])
def create_group(payload: GroupCreate, user: UserContext = Depends(get_current_user), data: DataService = Depends(get_data)):
    return GroupService(data, user).create(payload)


@app.get("/groups/{name}", response_model=GroupOut, tags=['Groups'])
def get_group(name: str, data: DataService = Depends(get_data), user: Optional[UserContext] = Depends(get_optional_user)):
    return GroupService(data, user).get(name)


@app.get("/groups/{name}/posts", response_model=List[PostOut], tags=['Groups'])
def get_group_posts(
    name: str, data: DataService = Depends(get_data), user: Optional[UserContext] = Depends(get_optional_user)
):
    group = GroupService(data, user).find(name)
    return PostService(data, user).by_group(group["id"])


@app.post("/groups/{name}/join", response_model=GroupOut, tags=['Groups'])
def join_group(name: str, user: UserContext = Depends(get_current_user), data: DataService = Depends(get_data)):
    return GroupService(data, user).join(name)


@app.delete("/groups/{name}/leave", response_model=GroupOut, tags=['Groups'])
def leave_group(name: str, user: UserContext = Depends(get_current_user), data: DataService = Depends(get_data)):
    return GroupService(data, user).leave(name)


@app.post("/groups/{name}/image", response_model=GroupOut, tags=['Groups'])
def upload_group_image(
    name: str,
    file: UploadFile = File(...),
    user: UserContext = Depends(get_current_user),
    data: DataService = Depends(get_data),
    storage: MediaStorage = Depends(get_storage),
):
    groups = GroupService(data, user)
    group = groups.find(name)
    user.require_owner(group["creator_id"], "group")
    return groups.set_image(name, _store_upload(storage, "group-images", file))


# ---------- Posts ----------

@app.get("/posts", response_model=List[PostOut], tags=['Posts'])
def get_posts(data: DataService = Depends(get_data), user: Optional[UserContext] = Depends(get_optional_user)):
    return PostService(data, user).home()


@app.get("/posts/recent", response_model=List[PostOut], tags=['Posts'])
def get_recent_posts(data: DataService = Depends(get_data), user: Optional[UserContext] = Depends(get_optional_user)):
    return PostService(data, user).recent()


@app.get("/posts/trending", response_model=List[PostOut], tags=['Posts'])
def get_trending_posts(data: DataService = Depends(get_data), user: Optional[UserContext] = Depends(get_optional_user)):
    return PostService(data, user).trending()


@app.post("/posts", response_model=PostOut, status_code=status.HTTP_201_CREATED, tags=['Posts'])
def create_post(post: PostCreate, user: UserContext = Depends(get_current_user), data: DataService = Depends(get_data)):
    return PostService(data, user).create(post)


@app.post("/posts/media", response_model=MediaOut, tags=['Posts'])
def upload_post_media(
    file: UploadFile = File(...),
    user: UserContext = Depends(get_current_user),
    storage: MediaStorage = Depends(get_storage),
):
    post_type = media_kind(file.content_type)
    media_url = _store_upload(storage, "post-media", file)
    logger.info(f"User {user.user_id} uploaded {post_type} media")
    return MediaOut(media_url=media_url, post_type=post_type)


@app.get("/posts/{post_id}", response_model=PostOut, tags=['Posts'])
def get_post(post_id: int, data: DataService = Depends(get_data), user: Optional[UserContext] = Depends(get_optional_user)):
    return PostService(data, user).get(post_id)


@app.patch("/posts/{post_id}", response_model=PostOut, tags=['Posts'])
def update_post(
    post_id: int, payload: PostUpdate, user: UserContext = Depends(get_current_user), data: DataService = Depends(get_data)
):
    return PostService(data, user).update(post_id, payload)


@app.delete("/posts/{post_id}", tags=['Posts'])
def delete_post(post_id: int, user: UserContext = Depends(get_current_user), data: DataService = Depends(get_data)):
    PostService(data, user).delete(post_id)
    return {"message": "Post deleted successfully"}


@app.post("/posts/{post_id}/vote", response_model=VoteOut, tags=['Votes'])
def vote_post(
    post_id: int, vote: VoteCreate, user: UserContext = Depends(get_current_user), data: DataService = Depends(get_data)
):
    controller = VoteController.load(data, post_id, user)
    tally = controller.vote(VoteAction(vote.vote))
    return VoteOut(
        post_id=post_id,
        upvotes=tally.upvotes,
        downvotes=tally.downvotes,
        user_vote=int(tally.state),
        net_score=tally.net_score,
    )


# ---------- Comments ----------

@app.get("/posts/{post_id}/comments", response_model=CommentTreeOut, tags=['Comments'])
def get_comments(post_id: int, data: DataService = Depends(get_data)):
    return CommentService(data).tree(post_id)


@app.post("/posts/{post_id}/comments", response_model=CommentOut, status_code=status.HTTP_201_CREATED, tags=['Comments'])
def create_comment(
    post_id: int, comment: CommentCreate, user: UserContext = Depends(get_current_user), data: DataService = Depends(get_data)
):
    return CommentService(data, user).create(post_id, comment.content, comment.parent_id)


@app.patch("/comments/{comment_id}", response_model=CommentOut, tags=['Comments'])
def update_comment(
    comment_id: int, comment: CommentUpdate, user: UserContext = Depends(get_current_user), data: DataService = Depends(get_data)
):
    return CommentService(data, user).update(comment_id, comment.content)


@app.delete("/comments/{comment_id}", tags=['Comments'])
def delete_comment(comment_id: int, user: UserContext = Depends(get_current_user), data: DataService = Depends(get_data)):
    removed = CommentService(data, user).delete(comment_id)
    return {"message": "Comment deleted successfully", "removed": removed}


if __name__ == "__main__":
    import os

    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)

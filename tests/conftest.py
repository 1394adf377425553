import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from gamehub.context import UserContext
from gamehub.data_service import DataService
from gamehub.database import get_db
from gamehub.main import app, get_storage
from gamehub.models import Base
from gamehub.storage import MediaStorage
from gamehub.utils import hash_password


@pytest.fixture
def db_session():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def data(db_session):
    return DataService(db_session)


@pytest.fixture
def make_user(data):
    def _make_user(username):
        user = data.insert(
            "users",
            {"username": username, "email": f"{username}@test.com", "hashed_password": hash_password("password123")},
        )
        data.insert("profiles", {"user_id": user["id"], "username": username, "display_name": username.title()})
        return UserContext(user_id=user["id"], username=username, email=user["email"])
    return _make_user


@pytest.fixture
def make_group(data):
    def _make_group(name, creator):
        group = data.insert("groups", {"name": name, "description": f"All about {name}", "creator_id": creator.user_id})
        data.insert("group_members", {"group_id": group["id"], "user_id": creator.user_id})
        return data.update("groups", group["id"], {"member_count": 1})
    return _make_group


@pytest.fixture
def make_post(data):
    def _make_post(author, group, title="Post", upvotes=0, downvotes=0, comment_count=0):
        return data.insert(
            "posts",
            {
                "title": title,
                "content": "",
                "post_type": "text",
                "author_id": author.user_id,
                "group_id": group["id"],
                "upvotes": upvotes,
                "downvotes": downvotes,
                "comment_count": comment_count,
            },
        )
    return _make_post


@pytest.fixture
def client(db_session, tmp_path):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage] = lambda: MediaStorage(root=str(tmp_path), base_url="/media")
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(client):
    def _auth_headers(username):
        client.post(
            "/register",
            json={"username": username, "email": f"{username}@test.com", "password": "password123"},
        )
        response = client.post("/login", data={"username": username, "password": "password123"})
        return {"Authorization": f"Bearer {response.json()['access_token']}"}
    return _auth_headers

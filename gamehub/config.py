import os

class Settings:
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./gamehub.db")
    SECRET_KEY: str = os.getenv("SECRET_KEY", "change-me")
    ALGORITHM: str = os.getenv("ALGORITHM", "HS256")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))
    MEDIA_ROOT: str = os.getenv("MEDIA_ROOT", "./media")
    MEDIA_BASE_URL: str = os.getenv("MEDIA_BASE_URL", "/media")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    HOME_FEED_LIMIT: int = 20
    RECENT_FEED_LIMIT: int = 50
    TRENDING_FETCH_LIMIT: int = 20
    POPULAR_GROUPS_LIMIT: int = 10
    DASHBOARD_LIMIT: int = 10

settings = Settings()

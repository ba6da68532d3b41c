import os
from typing import List
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

# Explicitly load .env file before defining Settings
env_path = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), ".env")
load_dotenv(env_path)

class Settings(BaseSettings):
    PROJECT_NAME: str = "ShareZone"
    API_V1_STR: str = "/api/v1"
    LOG_LEVEL: str = "INFO"

    BACKEND_CORS_ORIGINS: List[str] = ["http://localhost:5173", "http://127.0.0.1:5173"]

    # Database
    SQLALCHEMY_DATABASE_URI: str = "sqlite:///./sharezone.db"

    # Security
    BCRYPT_ROUNDS: int = 10

    # Storage
    UPLOAD_DIR: str = os.path.join(os.getcwd(), "upload_storage")
    # Extra storage roots. Comma separated string in env, parsed to list.
    STORAGE_PATHS_STR: str = ""

    @property
    def STORAGE_PATHS(self) -> List[str]:
        paths = [self.UPLOAD_DIR]
        if self.STORAGE_PATHS_STR:
            # Handle potential quote wrapping from env file parsing
            raw_str = self.STORAGE_PATHS_STR.strip('"\'')
            extra_paths = [p.strip() for p in raw_str.split(",") if p.strip()]
            paths.extend(extra_paths)
        return paths

    # Zone lifetime (hours)
    ZONE_MIN_HOURS: int = 1
    ZONE_MAX_HOURS: int = 5
    ZONE_MAX_TOTAL_HOURS: int = 10

    # Uploads
    MAX_FILE_SIZE_BYTES: int = 50 * 1024 * 1024
    MAX_FILES_PER_UPLOAD: int = 10
    ALLOW_AUDIO_UPLOADS: bool = False

    # Reaper
    REAPER_ENABLED: bool = True
    REAPER_INTERVAL_SECONDS: int = 5 * 60
    ORPHAN_GRACE_MINUTES: int = 60

    # Chat
    CHAT_HISTORY_LIMIT: int = 200
    CHAT_MAX_LENGTH: int = 2000

    class Config:
        case_sensitive = True

settings = Settings()

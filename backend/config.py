import os
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, List


class Settings(BaseSettings):
    # "firestore" in production, "memory" for local play and tests
    store_backend: str = "firestore"
    google_cloud_project: str = ""
    google_application_credentials: str = ""
    firestore_emulator_host: Optional[str] = None

    # Word list + location catalog (words.json, locations.json)
    catalog_dir: str = os.path.join(os.path.dirname(__file__), "data")

    # Join-with-verify retry policy: delay = join_backoff_seconds * (attempt + 1)
    join_max_attempts: int = 3
    join_backoff_seconds: float = 0.1

    # Room codes are short and human-typed
    room_code_length: int = 4
    room_code_attempts: int = 10

    board_race_round_seconds: int = 60
    board_race_card_count: int = 200
    word_grid_turn_seconds: int = 90
    outsider_game_seconds: int = 360

    # CORS origins — set ALLOWED_ORIGINS env var for production (comma-separated)
    allowed_origins: List[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
    ]
    debug: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
    )


settings = Settings()

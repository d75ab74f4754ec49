from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    db_path: str = "minimerge.sqlite"
    foreign_keys: bool = True
    log_level: str = "INFO"
    cors_origins: list[str] = ["*"]

    model_config = {
        "env_prefix": "MINIMERGE_",
        "env_file": str(Path(__file__).resolve().parent / ".env"),
        "env_file_encoding": "utf-8",
    }


settings = Settings()

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    API_HOST: str = "127.0.0.1"
    API_PORT: int = 8080

    # Snapshot file holding every task and user
    DATABASE_PATH: str = "database.json"

    # Browser clients served from localhost, plus file:// pages (Origin: null)
    CORS_ORIGIN_REGEX: str = r"^(http://localhost(:\d+)?|null)$"

    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"

    class Config:
        env_file = ".env"


settings = Settings()

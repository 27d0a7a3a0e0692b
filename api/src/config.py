from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    database_url: str = "sqlite:///./pushdeploy.db"
    github_webhook_secret: str = ""
    api_host: str = "0.0.0.0"
    api_port: int = 8000

@lru_cache()
def get_settings() -> Settings:
    return Settings()

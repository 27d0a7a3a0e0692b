from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    database_url: str = "sqlite:///./pushdeploy.db"

    # Workspace settings
    workspace_root: str = "./.pushdeploy/workspaces"

    # Step settings
    step_timeout: float = 600  # 10 minutes default
    log_tail_lines: int = 1000  # Lines of step output kept per stream

    # Dispatcher settings
    max_concurrent_runs: int = 4
    git_timeout: float = 120

@lru_cache()
def get_settings() -> Settings:
    return Settings()

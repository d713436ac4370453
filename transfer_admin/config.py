from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "dev"
    SERVICE_PORT: int = 8080
    MAX_REQUEST_SIZE: int = 65536
    LOG_JSON: bool = True
    # HMAC key for transfer token access keys; transfer is unusable without it
    TRANSFER_TOKEN_SALT: str | None = None
    # Turns off data transfer entirely, silencing the missing salt warning
    TRANSFER_DISABLED: bool = False
    TRANSFER_ACTIONS: str = "push,pull"  # Comma-separated list of actions


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()

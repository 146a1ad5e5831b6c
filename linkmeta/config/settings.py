from pydantic_settings import BaseSettings
import os

class ServerSettings(BaseSettings):
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    DEBUG: bool = False
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

class RedisSettings(BaseSettings):
    URL: str = os.getenv("REDIS_URL", "redis://redis:6379/0")
    BLOB_KEY: str = "linkmeta:durable"

class FetcherSettings(BaseSettings):
    USER_AGENT: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/114.0.0.0 Safari/537.36"
    )
    ACCEPT: str = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"
    ACCEPT_LANGUAGE: str = "en-US,en;q=0.9"

    # Scheduler limits
    MAX_CONCURRENT_REQUESTS: int = 10
    RESULT_CACHE_MAX_SIZE: int = 1000

    # BeautifulSoup tree builder ("html.parser", "lxml", "html5lib")
    PARSER_FEATURES: str = "html.parser"

class PreviewDefaults(BaseSettings):
    REQUEST_TIMEOUT_MS: int = 7000
    SHOW_ERROR_WARNINGS: bool = True

class IconSettings(BaseSettings):
    EXPIRATION_DAYS: int = 30
    SAVE_DEBOUNCE_SECONDS: float = 1.0
    CACHE_KEY: str = "icon-cache"

    # Third-party lookup service (preferred source)
    LOOKUP_ENABLED: bool = True
    LOOKUP_SIZE: int = 128

    # Durable tier: "file", "redis" or "memory"
    STORAGE_BACKEND: str = os.getenv("ICON_STORAGE_BACKEND", "file")
    STORAGE_PATH: str = os.getenv("ICON_STORAGE_PATH", "data/durable.json")

class AppSettings(BaseSettings):
    SERVER: ServerSettings = ServerSettings()
    REDIS: RedisSettings = RedisSettings()
    FETCHER: FetcherSettings = FetcherSettings()
    PREVIEW: PreviewDefaults = PreviewDefaults()
    ICON: IconSettings = IconSettings()

    class Config:
        env_file = ".env"
        case_sensitive = True
        env_nested_delimiter = "__"

settings = AppSettings()

from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    # Application settings
    app_name: str = "Portal Search"
    app_version: str = "1.0.0"
    debug: bool = False
    environment: str = "development"

    # Database settings
    database_url: str = "sqlite+aiosqlite:///./portal_search.db"

    # Logging settings
    log_level: str = "INFO"
    log_json: bool = True

    # CORS settings
    allowed_origins: list[str] = ["http://localhost:3000", "http://localhost:8000"]

    # Search settings
    search_languages: list[str] = ["en", "ne"]
    search_default_language: str = "en"
    search_snippet_length: int = 150
    search_suggestion_limit: int = 5
    search_timeout_seconds: float = 5.0
    search_analytics_enabled: bool = True
    search_max_page_size: int = 100
    search_bulk_error_limit: int = 100
    search_url_templates: dict[str, str] = {
        "CONTENT": "/content/{content_id}",
        "DOCUMENT": "/documents/{content_id}",
        "FAQ": "/faq/{content_id}",
    }

    # Suggestion maintenance
    suggestion_retention_days: int = 30
    suggestion_min_frequency: int = 2

    # Query log retention
    query_log_retention_days: int = 90

    # Scheduler settings
    scheduler_enabled: bool = True
    suggestion_cleanup_hour: int = 2
    query_purge_hour: int = 3
    bulk_reindex_hour: int = 4

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


settings = Settings()

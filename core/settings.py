from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Local database holding the key-value state table
    DATABASE_URL: str = "sqlite:///./formforge.db"

    # Key-value backend used by the form repository: "sql" or "memory"
    STORAGE_BACKEND: str = "sql"

    # Well-known key under which the saved form collection is stored
    FORMS_STORAGE_KEY: str = "dynamic-form-builder-forms"

    LOG_LEVEL: str = "INFO"
    JSON_LOGS: bool = False

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")


settings = Settings()

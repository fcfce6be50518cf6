"""
Payer Contact Matcher Configuration Settings
"""
from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Paths (use MATCHER_ prefix)
    data_path: Path = Field(
        default=Path("./data"),
        alias="MATCHER_DATA_PATH",
        description="Directory holding the SQLite databases"
    )
    contacts_db_path: str = Field(
        default="",
        alias="MATCHER_CONTACTS_DB",
        description="Contacts database (defaults to <data_path>/contacts.db)"
    )
    cache_db_path: str = Field(
        default="",
        alias="MATCHER_CACHE_DB",
        description="Key-value cache database (defaults to <data_path>/cache.db)"
    )
    transactions_db_path: str = Field(
        default="",
        alias="MATCHER_TRANSACTIONS_DB",
        description="Bank transactions database (defaults to <data_path>/transactions.db)"
    )
    analysers_path: Path = Field(
        default=Path(__file__).parent / "analysers.yaml",
        alias="MATCHER_ANALYSERS_PATH",
        description="YAML file with named analyser configurations"
    )

    # Server
    port: int = Field(default=8000, alias="MATCHER_PORT")
    host: str = Field(default="0.0.0.0", alias="MATCHER_HOST")

    # Contact directory (get-or-create service)
    # Empty URL means the local SQLite directory is used
    directory_url: str = Field(
        default="",
        alias="MATCHER_DIRECTORY_URL",
        description="Base URL of a remote get-or-create service"
    )
    directory_timeout: float = Field(default=10.0, alias="MATCHER_DIRECTORY_TIMEOUT")
    directory_max_retries: int = Field(
        default=2,
        alias="MATCHER_DIRECTORY_MAX_RETRIES",
        description="Retries on connection errors only (get-or-create is idempotent)"
    )

    # Name extraction
    first_name_cache_ttl: int = Field(
        default=60 * 60 * 24 * 7,  # one week
        alias="MATCHER_FIRST_NAME_CACHE_TTL",
        description="Seconds before the known first names are reloaded from the contacts DB"
    )
    default_name_mode: str = Field(default="first", alias="MATCHER_NAME_MODE")
    default_contact_type: str = Field(default="Individual", alias="MATCHER_CONTACT_TYPE")

    @property
    def directory_is_remote(self) -> bool:
        """Check if a remote get-or-create service is configured."""
        return bool(self.directory_url and self.directory_url.strip())


settings = Settings()

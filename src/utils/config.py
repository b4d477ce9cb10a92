from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppConfig(BaseSettings):
    """
    Runtime settings, read from GREENGO_* environment variables (or a .env file).

    Fields:
      - db_path: sqlite file backing the document store
      - local_storage: json file used as device-local storage, empty keeps it in memory
      - log_level: name of the logging level, falls back to DEBUG/INFO from the DEBUG variable
      - currency: symbol printed in front of prices
      - seed_catalog: load the bundled products into an empty catalog
    """

    model_config = SettingsConfigDict(
        env_prefix="GREENGO_",
        env_file=".env",
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    db_path: str = "data/greengo.sqlite"
    local_storage: Optional[str] = "data/local_storage.json"
    log_level: Optional[str] = None
    currency: str = "Rs."
    seed_catalog: bool = True
    debug: bool = Field(False, validation_alias="DEBUG")

    @field_validator("local_storage", "log_level", mode="before")
    @classmethod
    def _blank_is_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def level_name(self) -> str:
        if self.log_level:
            return self.log_level.upper()
        return "DEBUG" if self.debug else "INFO"

    def format_price(self, amount: int) -> str:
        return f"{self.currency} {amount}"


@lru_cache(maxsize=1)
def load_config() -> AppConfig:
    return AppConfig()

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    DATABASE_URL: str = "postgresql://pawtrail:pawtrail@db:5432/pawtrail"
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    # Comma-separated allowed origins, or "*" to allow all.
    # Example: "https://myapp.com,https://api.myapp.com"
    CORS_ORIGINS: str = "*"

    # All "daily" semantics (missions, streaks, ledger day keys) are anchored
    # to this single timezone, not to the user's local time.
    DAY_KEY_TIMEZONE: str = "Asia/Jerusalem"

    # Catalog subset snapshotted into every user's daily mission set.
    DAILY_MISSION_KEYS: str = "SEARCH_PET_STORE,READ_ARTICLE,OPEN_EXPENSES_SUMMARY,DAILY_WALK"

    # Google Places (New): POI lookup collaborator
    GOOGLE_MAPS_API_KEY: str = ""
    PLACES_BASE_URL: str = "https://places.googleapis.com/v1"
    POI_LOOKUP_TIMEOUT_SECONDS: float = 3.0
    POI_CACHE_TTL_SECONDS: int = 15 * 60
    POI_CACHE_MAX_ENTRIES: int = 5000

    @property
    def cors_origins_list(self) -> list[str]:
        if self.CORS_ORIGINS.strip() == "*":
            return ["*"]
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def daily_mission_keys_list(self) -> list[str]:
        return sorted(k.strip() for k in self.DAILY_MISSION_KEYS.split(",") if k.strip())


settings = Settings()

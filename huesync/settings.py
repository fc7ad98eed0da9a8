from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    HUE_API_URL: str = "https://api.meethue.com/route/api"
    HUE_API_V2_URL: str = "https://api.meethue.com/route/clip/v2/resource"
    HUE_TOKEN_URL: str = "https://api.meethue.com/v2/oauth2/token"
    HUE_CLIENT_ID: str = ""
    HUE_CLIENT_SECRET: str = ""
    DB_URL: str = "sqlite:///./data/huesync.db"
    LOG_LEVEL: str = "INFO"
    HTTP_TIMEOUT: float = 15.0
    # refresh this long before the vendor-reported expiry
    TOKEN_REFRESH_BUFFER_S: int = 300
    ACTIVITY_WINDOW_MINUTES: int = 5
    NIGHT_START_HOUR: int = 23
    NIGHT_END_HOUR: int = 6
    LOW_BATTERY_THRESHOLD: int = 20
    DAILY_STATS_DAYS_BACK: int = 7

settings = Settings()

"""Application settings and configuration"""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    APP_NAME: str = "Raid Attendance"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Warcraft Logs API (client credentials grant)
    WCL_CLIENT_ID: Optional[str] = None
    WCL_CLIENT_SECRET: Optional[str] = None
    WCL_BASE_URL: str = "https://classic.warcraftlogs.com"

    # Warcraft Logs client resilience controls
    WCL_TIMEOUT_SECONDS: float = 30.0
    WCL_MAX_RETRIES: int = 3
    WCL_BACKOFF_BASE_SECONDS: float = 1.0
    WCL_BACKOFF_MAX_SECONDS: float = 16.0
    WCL_TOKEN_REFRESH_SKEW_SECONDS: int = 60
    WCL_REPORTS_PAGE_LIMIT: int = 100
    WCL_CONCURRENCY: int = 4

    # Guild identity
    GUILD_NAME: str = "Tempest"
    GUILD_SERVER_SLUG: str = "dreamscythe"
    GUILD_REGION: str = "us"

    # Raid calendar
    TIMEZONE: str = "America/Chicago"
    ATTENDANCE_WEEKDAYS: str = "tue,thu"
    ATTENDANCE_WINDOW_WEEKS: int = 6

    # Comma-separated member class allow-list and known NPC deny-list
    ATTENDANCE_PLAYER_CLASSES: str = (
        "Warrior,Rogue,Warlock,Paladin,Priest,Druid,Hunter,Mage,Shaman,"
        "Death Knight,DeathKnight,Monk,Demon Hunter,DemonHunter,Evoker"
    )
    ATTENDANCE_KNOWN_NPCS: str = "Lieutenant General Andorov,Kaldorei Elite"

    # Admin API
    ATTEND_ADMIN_TOKEN: Optional[str] = None
    LOCAL_STATE_PATH: Optional[str] = None  # JSON file for overrides / alt links / excluded dates
    SNAPSHOT_PATH: Optional[str] = None  # JSON file for the last successful roll-up
    ATTENDANCE_REFRESH_ON_CHANGE: bool = True
    ATTENDANCE_REFRESH_TIMEOUT_SECONDS: float = 300.0

    # HTTP
    CORS_ORIGIN: str = "http://localhost:5173"
    USER_AGENT: str = "RaidAttendance/1.0"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields in .env


settings = Settings()

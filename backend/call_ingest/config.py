import os
from functools import lru_cache

from dotenv import load_dotenv
from pydantic import BaseModel


class Settings(BaseModel):
    webhook_secret: str = ""
    batch_agent_id: str = ""
    in_app_agent_id: str = ""
    supabase_url: str = ""
    supabase_service_role_key: str = ""
    # Provider signs with unix seconds; anything older than this is a replay.
    webhook_tolerance_seconds: int = 1800
    in_app_session_window_minutes: int = 10
    batch_mapping_window_minutes: int = 120
    log_level: str = "INFO"

    @property
    def use_supabase(self) -> bool:
        return bool(self.supabase_url and self.supabase_service_role_key)


def settings_from_env() -> Settings:
    load_dotenv()
    return Settings(
        webhook_secret=os.getenv("ELEVENLABS_WEBHOOK_SECRET", ""),
        batch_agent_id=os.getenv("ELEVEN_AGENT_ID", ""),
        in_app_agent_id=os.getenv("ELEVEN_AGENT_ID_IN_APP", ""),
        supabase_url=os.getenv("SUPABASE_URL", ""),
        supabase_service_role_key=os.getenv("SUPABASE_SERVICE_ROLE_KEY", ""),
        webhook_tolerance_seconds=int(os.getenv("WEBHOOK_TOLERANCE_SECONDS", "1800")),
        in_app_session_window_minutes=int(os.getenv("IN_APP_SESSION_WINDOW_MINUTES", "10")),
        batch_mapping_window_minutes=int(os.getenv("BATCH_MAPPING_WINDOW_MINUTES", "120")),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )


@lru_cache()
def get_settings() -> Settings:
    return settings_from_env()

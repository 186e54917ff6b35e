# imagine/config.py
from pydantic_settings import BaseSettings
from pydantic import Field

_DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/143.0.0.0 Safari/537.36"
)

class Settings(BaseSettings):
    # App
    app_env: str = Field("local", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    tz: str = Field("UTC", alias="APP_TZ")
    host: str = Field("0.0.0.0", alias="HOST")
    port: int = Field(4000, alias="PORT")

    # Target site
    target_url: str = Field("https://unitool.ai/en/midjourney", alias="TARGET_URL")
    prompt_suffix: str = Field("--ar 16:9 --v 7 --stylize 750 --q 2", alias="PROMPT_SUFFIX")
    default_prompt: str = Field("beautiful cat portrait", alias="DEFAULT_PROMPT")

    # Browser
    headless: bool = Field(True, alias="HEADLESS")
    user_agent: str = Field(_DEFAULT_USER_AGENT, alias="USER_AGENT")
    cookies_path: str = Field("cookies.json", alias="COOKIES_PATH")

    # Generation controls
    max_retries: int = Field(2, alias="MAX_RETRIES")
    retry_backoff_seconds: float = Field(10.0, alias="RETRY_BACKOFF_SECONDS")
    navigation_timeout_ms: int = Field(60_000, alias="NAVIGATION_TIMEOUT_MS")
    selector_timeout_ms: int = Field(15_000, alias="SELECTOR_TIMEOUT_MS")
    generation_timeout_ms: int = Field(180_000, alias="GENERATION_TIMEOUT_MS")
    settle_delay_ms: int = Field(5_000, alias="SETTLE_DELAY_MS")
    max_images: int = Field(4, alias="MAX_IMAGES")
    link_check_timeout_seconds: float = Field(10.0, alias="LINK_CHECK_TIMEOUT_SECONDS")

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"

settings = Settings()

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"

    WHATSAPP_BRIDGE_URL: str | None = None
    WHATSAPP_BRIDGE_TOKEN: str | None = None
    WHATSAPP_CLIENT_ID: str = "whatsapp-bot"
    WHATSAPP_SESSION_DIR: str = "./sessions"
    WHATSAPP_COMMAND_TIMEOUT_SECONDS: float = 30.0
    WHATSAPP_INIT_TIMEOUT_SECONDS: float = 60.0
    WHATSAPP_RECONNECT_DELAY_SECONDS: float = 5.0
    WHATSAPP_RECONNECT_ON_INIT_TIMEOUT: bool = False

    BACKEND_BASE_URL: str = "http://localhost:3000/api"
    BACKEND_API_KEY: str | None = None
    BACKEND_TIMEOUT_SECONDS: float = 10.0
    BACKEND_RETRIES: int = 3
    BACKEND_RETRY_DELAY_SECONDS: float = 1.0

    OTP_DEFAULT_EXPIRY_MINUTES: int = 5

    UPLOAD_DIR: str = "./uploads"
    MEDIA_DOWNLOAD_TIMEOUT_SECONDS: float = 30.0


settings = Settings()

from pydantic_settings import BaseSettings


class Config(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str  # MongoDB URL, database name in the path
    redis_url: str = "redis://localhost:6379/0"
    amqp_url: str = "amqp://localhost"
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 4000
    debug: bool = False
    cors_origins: list[str] = []

    # Tokens
    jwt_secret: str
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60
    refresh_token_expiry_days: int = 7
    jwt_refresh_expiration: int | None = None  # minutes, overrides refresh_token_expiry_days when set
    rotate_refresh_token: bool = False  # issue a new refresh token on every refresh

    # Login and OTP policy
    account_lock_max_count: int = 5
    otp_resend_max_count: int = 5
    otp_send_max_hours: float = 1
    otp_expiry_minutes: int = 5
    session_ttl_seconds: int = 86400
    password_expiry_days: int = 90
    password_check_interval_hours: float = 24

    # Post-processing
    sentiment_analysis: str = "sentiment"  # "sentiment" selects the lexicon analyzer, anything else the LLM
    llm_model: str = "gpt-4"
    llm_api_key: str = ""

    # Work queue
    entry_queue: str = "entry_queue"
    queue_prefetch: int = 30
    queue_reconnect_delay: float = 1.0
    queue_max_delivery_attempts: int = 5  # 0 means requeue forever
    queue_consumer_enabled: bool = True

    model_config = {
        "env_file": [".env"],
        "extra": "ignore",
    }

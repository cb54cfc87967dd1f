import os
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./crowdfund.db")
    database_echo: bool = os.getenv("DATABASE_ECHO", "false").lower() == "true"

    kafka_bootstrap: str = os.getenv("KAFKA_BOOTSTRAP", "kafka:9092")
    outbox_poll_interval: float = float(os.getenv("OUTBOX_POLL_INTERVAL", "0.5"))
    outbox_batch_size: int = int(os.getenv("OUTBOX_BATCH_SIZE", "50"))
    outbox_flush_timeout: float = float(os.getenv("OUTBOX_FLUSH_TIMEOUT", "10"))

    jwt_issuer: str = os.getenv("JWT_ISSUER", "crowdfund")
    jwt_secret: str = os.getenv("JWT_SECRET", "dev-secret-change-me-before-any-real-deploy")
    internal_jwt_ttl_seconds: int = int(os.getenv("INTERNAL_JWT_TTL_SECONDS", "300"))
    require_internal_auth: bool = os.getenv("REQUIRE_INTERNAL_AUTH", "true").lower() == "true"

    # smallest-unit contribution -> smallest-unit reward credit
    reward_issuance_ratio: int = int(os.getenv("REWARD_ISSUANCE_RATIO", "100"))
    reward_token_name: str = os.getenv("REWARD_TOKEN_NAME", "Crowdfund Reward Token")
    reward_token_symbol: str = os.getenv("REWARD_TOKEN_SYMBOL", "CRT")

settings = Settings()

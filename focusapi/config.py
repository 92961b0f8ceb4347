from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
from urllib.parse import quote_plus


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file="focusapi/.env",
        env_file_encoding="utf-8",
        extra="allow",
    )
    # Application
    APP_NAME: str = "Focus Token API"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Database
    POSTGRES_HOST: str = ""
    POSTGRES_PORT: int = 5432
    POSTGRES_USERNAME: str = ""
    POSTGRES_PASSWORD: str = ""
    POSTGRES_DATABASE: str = ""

    # 지정 시 POSTGRES_* 조합보다 우선 (테스트/로컬 sqlite 용)
    DATABASE_URL: Optional[str] = None
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20

    @property
    def database_url(self) -> str:
        """Construct database URL from individual components"""
        if self.DATABASE_URL:
            return self.DATABASE_URL

        # URL encode the password to handle special characters
        encoded_password = quote_plus(self.POSTGRES_PASSWORD)
        return f"postgresql+psycopg2://{self.POSTGRES_USERNAME}:{encoded_password}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DATABASE}"

    # Identity (상위 게이트웨이가 검증한 사용자 ID를 전달하는 헤더)
    INTERNAL_USER_HEADER: str = "x-user-id"
    AUTH_TOKEN: str = ""

    # Token Rules
    TOKENS_PER_HOUR: int = 10  # 사용 1시간당 지급 토큰
    UNLOCK_COST_TOKENS: int = 20  # 앱 임시 해제 비용
    UNLOCK_DURATION_MINUTES: int = 60  # 임시 해제 유지 시간 (분)
    PROCESSED_WINDOW_RETENTION_DAYS: int = 30  # 멱등성 마커 보관 기간

    # Ledger Concurrency
    LEDGER_MAX_RETRIES: int = 5
    LEDGER_RETRY_BACKOFF_MS: int = 25

    # External Collaborators
    COLLABORATOR_TIMEOUT_SECONDS: float = 10.0
    ENGAGEMENT_API_URL: str = "http://localhost:8081"
    PAYMENT_GATEWAY_URL: str = "http://localhost:8082"
    PAYMENT_GATEWAY_API_KEY: str = ""

    # AWS
    AWS_REGION: str = "ap-northeast-2"
    AWS_ACCESS_KEY_ID: Optional[str] = None
    AWS_SECRET_ACCESS_KEY: Optional[str] = None
    SQS_ENDPOINT_URL: Optional[str] = None

    # 디바이스 차단 서비스가 구독하는 FIFO 큐
    SQS_ENFORCEMENT_QUEUE_URL: str = (
        "https://sqs.ap-northeast-2.amazonaws.com/000000000000/focus-enforcement.fifo"
    )


settings = Settings()

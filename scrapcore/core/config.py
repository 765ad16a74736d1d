from pathlib import Path

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parent.parent.parent  # project root
ENV_PATH = BASE_DIR / ".env"

# Load .env into the environment first so plain os.getenv callers see it too
load_dotenv(dotenv_path=ENV_PATH)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        extra="ignore",
        case_sensitive=False,
    )

    DATABASE_URL: str
    DATABASE_ECHO: bool = False

    JWT_SECRET: str
    JWT_ALG: str = "HS256"
    JWT_ACCESS_MINUTES: int = 60 * 24

    LOG_LEVEL: str = "INFO"

    # Money is stored in minor units of this currency
    CURRENCY: str = "INR"

    COMMISSION_RATE: float = 0.01
    MIN_COMMISSION: int = 1

    MIN_OPERATING_BALANCE: int = 100  # collector must hold this to claim an order
    MIN_SERVICE_BALANCE: int = 100  # requester must hold this to book a paid service
    MIN_WITHDRAWAL: int = 100
    MIN_RECHARGE: int = 1

    LARGE_ORDER_WEIGHT: float = 100.0
    AVAILABLE_ORDERS_LIMIT: int = 20

    # False: settlement is refused when the paying wallet cannot cover it
    ALLOW_NEGATIVE_SETTLEMENT: bool = False

    RAZORPAY_KEY_ID: str = ""
    RAZORPAY_KEY_SECRET: str = ""
    RAZORPAY_BASE_URL: str = "https://api.razorpay.com/v1"
    RAZORPAY_TIMEOUT: float = 15.0

    NOTIFY_WEBHOOK_URL: str | None = None
    NOTIFY_TIMEOUT: float = 5.0

    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]


settings = Settings()

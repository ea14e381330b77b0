import os


class Settings:
    # Storage: "mongo" for MongoDB + Redis, "memory" for a single-process dev setup
    STORAGE_BACKEND: str = os.getenv("STORAGE_BACKEND", "mongo")

    # Database
    MONGODB_URL: str = os.getenv("MONGODB_URL", "mongodb://localhost:27017/")
    MONGODB_DB: str = os.getenv("MONGODB_DB", "vendor_relay")

    # Redis
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    QUEUE_NAME: str = os.getenv("QUEUE_NAME", "vendor-jobs")
    RATE_LIMIT_KEY: str = os.getenv("RATE_LIMIT_KEY", "vendor-rate-limit")

    # Vendor URLs
    IMMEDIATE_VENDOR_URL: str = os.getenv("IMMEDIATE_VENDOR_URL", "http://localhost:8001")
    DELAYED_VENDOR_URL: str = os.getenv("DELAYED_VENDOR_URL", "http://localhost:8002")
    VENDOR_TIMEOUT: float = float(os.getenv("VENDOR_TIMEOUT", "30"))
    VENDOR_SELECTION: str = os.getenv("VENDOR_SELECTION", "random")

    # Rate limiting
    RATE_LIMIT_WINDOW: int = int(os.getenv("RATE_LIMIT_WINDOW", "60"))  # seconds
    RATE_LIMIT_MAX_REQUESTS: int = int(os.getenv("RATE_LIMIT_MAX_REQUESTS", "10"))  # per window
    RATE_LIMIT_MAX_WAIT: float = float(os.getenv("RATE_LIMIT_MAX_WAIT", "60"))

    # Dispatcher
    POLL_INTERVAL: float = float(os.getenv("POLL_INTERVAL", "1"))
    RUN_DISPATCHER_IN_API: bool = os.getenv("RUN_DISPATCHER_IN_API", "False").lower() == "true"

    # Mock vendors post their callbacks here
    WEBHOOK_URL: str = os.getenv("WEBHOOK_URL", "http://localhost:8000/api/vendor-webhook/delayed-reply")

    # Application
    APP_NAME: str = "Vendor Relay Service"
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    DEBUG: bool = os.getenv("DEBUG", "False").lower() == "true"


settings = Settings()

import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite file next to the app unless DATABASE_URL points at Postgres
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "devhire.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Bearer token sessions: 8 hours absolute, 2 hours idle
    SESSION_LIFETIME_SECONDS = int(os.getenv("SESSION_LIFETIME_SECONDS", str(8 * 60 * 60)))
    IDLE_TIMEOUT_SECONDS = int(os.getenv("IDLE_TIMEOUT_SECONDS", str(2 * 60 * 60)))

    PASSWORD_MIN_LENGTH = 6
    BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

    # Rate given to a freshly registered developer
    DEFAULT_HOURLY_RATE = os.getenv("DEFAULT_HOURLY_RATE", "50")

    # Stripe
    PAYMENT_CURRENCY = os.getenv("PAYMENT_CURRENCY", "usd")
    # developer earnings are credited in this currency
    WALLET_CURRENCY = os.getenv("WALLET_CURRENCY", "USDC")
    STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")

    # Upper bound for any single call to an external provider
    PROVIDER_TIMEOUT_SECONDS = int(os.getenv("PROVIDER_TIMEOUT_SECONDS", "10"))

    # Agora video
    AGORA_APP_ID = os.getenv("AGORA_APP_ID")
    AGORA_APP_CERTIFICATE = os.getenv("AGORA_APP_CERTIFICATE")
    AGORA_TOKEN_TTL_SECONDS = int(os.getenv("AGORA_TOKEN_TTL_SECONDS", "3600"))

    # Socket.IO CORS origin
    FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")

    # Basic app settings
    DEBUG = False

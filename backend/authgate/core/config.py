from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    # Database connection string - can be overridden via .env file
    DATABASE_URL: str = "sqlite:///./authgate.db"

    # Token signing; access and refresh tokens each have their own secret
    ACCESS_TOKEN_SECRET: str = "change-me-access-secret"
    REFRESH_TOKEN_SECRET: str = "change-me-refresh-secret"
    CSRF_SECRET: str = "change-me-csrf-secret"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7

    # Verification / reset token lifetimes (one value per flow, used on every path)
    VERIFICATION_TOKEN_EXPIRE_MINUTES: int = 10
    VERIFICATION_CLEAR_DELAY_SECONDS: int = 120
    RESET_TOKEN_EXPIRE_MINUTES: int = 60
    MIN_PASSWORD_LENGTH: int = 6

    # Signup may only pick its own role when this is enabled
    ALLOW_ROLE_ON_SIGNUP: bool = False

    # Cookies are marked Secure in production unless COOKIE_SECURE says otherwise
    ENVIRONMENT: str = "development"
    COOKIE_SECURE: Optional[bool] = None

    # Paths that skip CSRF validation (prefix match)
    CSRF_EXEMPT_PATHS: str = (
        "/login,/signup,/logout,/reset-password,/verify-email,"
        "/verify-reset-token,/resend-verification"
    )

    # Single frontend origin allowed to send credentialed requests
    CORS_ORIGIN: str = "http://localhost:5173"
    FRONTEND_BASE_URL: str = "http://localhost:5173"

    # Outgoing mail; when SMTP_HOST is empty nothing is sent
    SMTP_HOST: str = ""
    SMTP_PORT: int = 587
    SMTP_USERNAME: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_FROM_EMAIL: str = ""
    SMTP_FROM_NAME: str = "authgate"
    # Local development only: write verification and reset links to the log when SMTP is unset
    EMAIL_LOG_LINKS: bool = False

    # Requests per client address on the pre-authentication routes
    RATE_LIMIT_ENABLED: bool = True
    AUTH_RATE_LIMIT: str = "10/minute"

    LOG_LEVEL: str = "INFO"

    @property
    def cookie_secure(self) -> bool:
        if self.COOKIE_SECURE is not None:
            return self.COOKIE_SECURE
        return self.ENVIRONMENT.lower() == "production"

    def get_csrf_exempt_paths(self) -> list[str]:
        """Parse CSRF_EXEMPT_PATHS into a list of path prefixes"""
        return [path.strip() for path in self.CSRF_EXEMPT_PATHS.split(",") if path.strip()]

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()

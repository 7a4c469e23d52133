import logging
import secrets

from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

_INSECURE_DEFAULT_KEY = "change-me-in-production"


class ProviderConfig(BaseModel):
    """Authorization endpoint of a third-party identity provider."""

    authorize_url: str
    client_id: str = ""
    scopes: list[str] = []


def _default_providers() -> dict[str, ProviderConfig]:
    return {
        "google": ProviderConfig(
            authorize_url="https://accounts.google.com/o/oauth2/v2/auth",
            scopes=["openid", "email", "profile"],
        ),
        "github": ProviderConfig(
            authorize_url="https://github.com/login/oauth/authorize",
            scopes=["read:user", "user:email"],
        ),
    }


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_prefix="PRAXIS_", extra="ignore")

    db_url: str = "mysql+pymysql://praxis:praxis@db:3306/praxis"

    log_level: str = "INFO"
    log_json: bool = False

    webauthn_rp_id: str = "localhost"
    webauthn_rp_name: str = "Praxis"
    webauthn_origin: str = "http://localhost:3000"

    totp_issuer: str = "Praxis"

    password_min_length: int = 8
    bcrypt_rounds: int = 12

    session_lifetime_seconds: int = 86400  # 24 hours
    session_idle_seconds: int = 86400
    pending_login_ttl_seconds: int = 90
    ceremony_ttl_seconds: int = 300  # 5 minutes
    account_link_ttl_seconds: int = 600
    email_verification_ttl_seconds: int = 172800  # 48 hours

    second_factor_max_attempts: int = 3
    login_max_attempts: int = 5
    login_lockout_seconds: int = 60

    passkey_require_password: bool = True
    passkey_allow_zero_counter: bool = False

    providers: dict[str, ProviderConfig] = _default_providers()
    provider_redirect_base: str = "http://localhost:8000/auth/providers"

    secret_key: str = _INSECURE_DEFAULT_KEY

    def get_secret_key(self) -> str:
        if self.secret_key == _INSECURE_DEFAULT_KEY:
            logger.warning(
                "PRAXIS_SECRET_KEY is not set, using a random key. "
                "Sessions will not survive restarts. "
                "Set PRAXIS_SECRET_KEY in your environment or .env file."
            )
            self.secret_key = secrets.token_urlsafe(32)
        return self.secret_key


settings = Settings()

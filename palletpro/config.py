from pydantic_settings import BaseSettings, SettingsConfigDict

from palletpro.models import SubscriptionTier


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', env_file_encoding='utf-8', extra='ignore')

    database_url: str = 'sqlite:///palletpro.sqlite3'
    log_level: str = 'INFO'

    snapshot_provider: str = 'database'
    timezone: str = 'America/Los_Angeles'

    stale_threshold_days: int = 30
    insight_rotation_hours: int = 3
    max_insights: int = 3

    default_tier: SubscriptionTier = SubscriptionTier.FREE
    # Debug escape hatch; applied by TierLimitChecker when set.
    tier_override: SubscriptionTier | None = None

    # JSON mapping of platform -> fee rule fields, merged over the default table.
    platform_fee_overrides: dict[str, dict] = {}

    @property
    def database_url_normalized(self) -> str:
        url = self.database_url.strip()
        if url.startswith('postgres://'):
            return 'postgresql+psycopg://' + url[len('postgres://') :]
        if url.startswith('postgresql://'):
            return 'postgresql+psycopg://' + url[len('postgresql://') :]
        return url


settings = Settings()

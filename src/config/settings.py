"""
Environment-specific settings for the Lambda handlers.

The scoring and alerting services take explicit config objects; only the
handler layer reads the environment, through this module.
"""

from dataclasses import dataclass
import os

from models.alert import AlertEngineConfig


@dataclass
class Settings:
    """Handler settings with in-memory defaults for local runs."""

    # Environment
    environment: str = "dev"
    log_level: str = "INFO"

    # Alert storage: "memory" keeps alerts per warm container, "dynamodb" persists them
    alert_store: str = "memory"
    alerts_table_name: str = "customer-alerts"

    # Alert engine
    max_alerts_per_customer_per_day: int = 5
    respect_business_hours: bool = False

    @classmethod
    def from_environment(cls) -> "Settings":
        """Load settings from environment variables."""
        env = os.environ.get("ENVIRONMENT", "dev")
        default_store = "dynamodb" if env == "prod" else "memory"
        return cls(
            environment=env,
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
            alert_store=os.environ.get("ALERT_STORE", default_store).lower(),
            alerts_table_name=os.environ.get("ALERTS_TABLE", "customer-alerts"),
            max_alerts_per_customer_per_day=int(
                os.environ.get("MAX_ALERTS_PER_CUSTOMER_PER_DAY", "5")
            ),
            respect_business_hours=os.environ.get("RESPECT_BUSINESS_HOURS", "false").lower()
            == "true",
        )

    def alert_engine_config(self) -> AlertEngineConfig:
        """Engine config derived from these settings."""
        return AlertEngineConfig(
            max_alerts_per_customer_per_day=self.max_alerts_per_customer_per_day,
            respect_business_hours=self.respect_business_hours,
        )

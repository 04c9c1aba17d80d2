"""Configuration settings for the trainer."""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from wordrecall.errors import ConfigurationError

# Define base directory
BASE_DIR = Path(__file__).parent.parent.parent

# Load environment variables from .env file
env_file = ".env.test" if os.getenv("ENV") == "test" else ".env"
load_dotenv(env_file)

DATA_DIR = Path(os.getenv("DATA_DIR", "./data"))

# Study defaults
DEFAULT_DAILY_NEW_WORDS = 10
DEFAULT_DAILY_REVIEW_CAP = 50
DEFAULT_RELAPSE_CAP = 10
SECONDS_PER_WORD = 30


def ensure_directories() -> None:
    """Ensure all required directories exist."""
    DATA_DIR.mkdir(parents=True, exist_ok=True)


def _optional_env(name: str) -> Optional[str]:
    value = os.getenv(name)
    return value or None


@dataclass
class DatabaseSettings:
    """Database configuration settings."""
    url: str = os.getenv("DATABASE_URL", "sqlite:///wordrecall.db")
    echo: bool = os.getenv("DATABASE_ECHO", "false").lower() == "true"


@dataclass
class LoggingSettings:
    """Logging configuration settings."""
    level: str = os.getenv("LOG_LEVEL", "INFO")
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    dir: Optional[str] = os.getenv("LOG_DIR", None)
    rotation: str = os.getenv("LOG_ROTATION", "midnight")
    interval: int = int(os.getenv("LOG_INTERVAL", "1"))
    backup_count: int = int(os.getenv("LOG_BACKUP_COUNT", "7"))


@dataclass
class StudySettings:
    """Defaults for the daily queue and the in-session relapse queue.

    These are used when the learner has no stored value for the matching
    setting key.
    """
    daily_new_words: int = int(os.getenv("DAILY_NEW_WORDS", str(DEFAULT_DAILY_NEW_WORDS)))
    daily_review_cap: int = int(os.getenv("DAILY_REVIEW_CAP", str(DEFAULT_DAILY_REVIEW_CAP)))
    relapse_cap: int = int(os.getenv("RELAPSE_CAP", str(DEFAULT_RELAPSE_CAP)))
    active_wordlist_id: Optional[str] = field(default_factory=lambda: _optional_env("ACTIVE_WORDLIST_ID"))
    seconds_per_word: int = int(os.getenv("SECONDS_PER_WORD", str(SECONDS_PER_WORD)))


@dataclass
class MonitoringSettings:
    """Prometheus exporter settings."""
    enabled: bool = os.getenv("MONITORING_ENABLED", "false").lower() == "true"
    port: int = int(os.getenv("MONITORING_PORT", "9090"))


def get_database_settings() -> DatabaseSettings:
    """Get database settings."""
    return DatabaseSettings()


def get_logging_settings() -> LoggingSettings:
    """Get logging settings."""
    return LoggingSettings()


def get_study_settings() -> StudySettings:
    """Get study settings."""
    return StudySettings()


def get_monitoring_settings() -> MonitoringSettings:
    """Get monitoring settings."""
    return MonitoringSettings()


@dataclass
class Settings:
    """Main settings class that combines all configuration settings."""
    database: DatabaseSettings = field(default_factory=get_database_settings)
    logging: LoggingSettings = field(default_factory=get_logging_settings)
    study: StudySettings = field(default_factory=get_study_settings)
    monitoring: MonitoringSettings = field(default_factory=get_monitoring_settings)

    def validate(self) -> None:
        """Validate settings and raise ConfigurationError if invalid."""
        if self.study.daily_new_words < 0:
            raise ConfigurationError("DAILY_NEW_WORDS cannot be negative")

        if self.study.daily_review_cap < 0:
            raise ConfigurationError("DAILY_REVIEW_CAP cannot be negative")

        if self.study.relapse_cap < 0:
            raise ConfigurationError("RELAPSE_CAP cannot be negative")

        if self.study.seconds_per_word < 1:
            raise ConfigurationError("SECONDS_PER_WORD must be positive")

        if not 0 < self.monitoring.port < 65536:
            raise ConfigurationError("MONITORING_PORT must be a valid TCP port")


# Create global settings instance
settings = Settings()
settings.validate()

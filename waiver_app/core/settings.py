"""Application settings with environment validation."""

import os
from typing import List


class Settings:
    """Application settings with environment validation."""

    def __init__(self) -> None:
        # Database
        self.database_url = os.getenv("DATABASE_URL", "sqlite:///./waivers.db")
        self.sql_debug = self._parse_bool(os.getenv("SQL_DEBUG", "false"))
        self.db_pool_recycle = int(os.getenv("DB_POOL_RECYCLE", "3600"))

        # Application
        self.environment = os.getenv("ENV", "development")
        self.log_level = os.getenv("LOG_LEVEL", "INFO")
        self.cors_origins = self._parse_cors_origins(os.getenv("CORS_ORIGINS", "*"))

        # Waiver policy
        # Used as the PDF header when the organization has no academy_name merge field.
        self.default_organization_name = os.getenv("DEFAULT_ORGANIZATION_NAME", "Our Academy")
        # keep | blank | error
        self.unresolved_placeholder_policy = os.getenv("UNRESOLVED_PLACEHOLDER_POLICY", "keep").lower()
        self.guardian_required_when_dob_unknown = self._parse_bool(
            os.getenv("GUARDIAN_REQUIRED_WHEN_DOB_UNKNOWN", "false")
        )

    def _parse_cors_origins(self, v: str) -> List[str]:
        if v == "*":
            return ["*"]
        return [origin.strip() for origin in v.split(",")]

    def _parse_bool(self, v: str) -> bool:
        return v.lower() in ("true", "1", "yes", "on")

    @property
    def is_production(self) -> bool:  # convenience flag
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:  # convenience flag
        return self.environment.lower() == "development"


settings = Settings()

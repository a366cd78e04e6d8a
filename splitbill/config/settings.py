"""
Configuration Management for Split Bill

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Bill defaults, auto-save timing and the optional spreadsheet backend are
validated at startup instead of being scattered through the engine.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BillDefaultsSettings(BaseSettings):
    """Defaults applied to newly created bills."""

    model_config = SettingsConfigDict(
        env_prefix="SPLITBILL_BILL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    default_split_method: str = Field(
        default="EQUAL",
        pattern="^(EQUAL|PERCENT)$",
        description="Split method for new items"
    )
    rounding_rule: str = Field(
        default="NEAREST",
        pattern="^(UP|DOWN|NEAREST)$",
        description="Rounding applied to computed share amounts"
    )
    currency: str = Field(
        default="VND",
        min_length=3,
        max_length=3,
        description="ISO currency code"
    )
    allow_partial_participation: bool = Field(
        default=True,
        description="Whether participants may be excluded from normal items"
    )
    auto_validate_percentages: bool = Field(
        default=False,
        description="Reject percent recomputes whose shares do not sum to 100"
    )
    include_new_participants: bool = Field(
        default=True,
        description="Include a newly added participant in existing normal items"
    )
    min_participants_per_item: Optional[int] = Field(
        default=None,
        ge=1,
        description="Warn when a normal item has fewer included participants"
    )

    @field_validator('currency')
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()


class AutoSaveSettings(BaseSettings):
    """Debounced persistence of the working bill."""

    model_config = SettingsConfigDict(
        env_prefix="SPLITBILL_AUTOSAVE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    enabled: bool = Field(
        default=True,
        description="Persist the bill automatically after mutations"
    )
    debounce_seconds: float = Field(
        default=2.0,
        ge=0.0,
        le=60.0,
        description="Quiet period before a burst of mutations is written"
    )


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the Google Sheets spreadsheet to use"
    )

    # Sheet names within the spreadsheet
    bills_sheet_name: str = Field(
        default="Bills",
        description="Name of the sheet holding bill documents"
    )
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Name of the sheet for audit logs"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before enabling spreadsheet storage."
            )
        return v


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )

    # Engine behaviour
    strict_invariants: bool = Field(
        default=False,
        description="Raise InvariantViolation instead of reporting it"
    )
    distribute_all_delay_seconds: float = Field(
        default=0.5,
        ge=0.0,
        le=10.0,
        description="Simulated delay before a bulk distribute in a session"
    )


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Sub-settings are loaded lazily so a missing spreadsheet
    # configuration does not stop the engine from working.

    @property
    def bill_defaults(self) -> BillDefaultsSettings:
        return BillDefaultsSettings()

    @property
    def autosave(self) -> AutoSaveSettings:
        return AutoSaveSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, plus "<name>_error"
    entries describing what failed. Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    sections = {
        "bill_defaults": lambda: settings.bill_defaults,
        "autosave": lambda: settings.autosave,
        "google_sheets": lambda: settings.google_sheets,
        "app": lambda: settings.app,
    }

    for name, load in sections.items():
        try:
            load()
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results

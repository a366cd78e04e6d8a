"""Configuration package."""

from splitbill.config.settings import (
    AppSettings,
    AutoSaveSettings,
    BillDefaultsSettings,
    GoogleSheetsSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "AutoSaveSettings",
    "BillDefaultsSettings",
    "GoogleSheetsSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]

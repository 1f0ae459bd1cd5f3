"""Configuration package for the fund ledger service."""

from .settings import AppSettings, get_settings

__all__ = ["AppSettings", "get_settings"]

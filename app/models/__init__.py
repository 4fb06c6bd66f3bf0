"""SQLAlchemy ORM models for NairaSense."""

from app.models.currency_rate import CurrencyRate

__all__ = ["CurrencyRate"]

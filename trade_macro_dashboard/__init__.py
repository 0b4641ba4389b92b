"""Bilateral trade and macro data pipeline with statistical forecasting."""

__version__ = "0.1.0"

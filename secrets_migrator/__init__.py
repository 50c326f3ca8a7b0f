"""Migrate GitHub Actions organization secrets between organizations."""

__version__ = '1.0.0'

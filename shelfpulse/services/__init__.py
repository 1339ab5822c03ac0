"""shelfpulse - Services Package

This package contains service modules for external integrations:
- Google Books catalog client
- HTTP client abstraction
"""

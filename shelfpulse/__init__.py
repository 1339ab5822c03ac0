"""shelfpulse - personal reading tracker backend

This package contains the core application modules including:
- API endpoints (api.py)
- Library ledger: library entries, collections, reviews (ledger.py)
- Catalog normalization of external book records (catalog.py)
- Users, credentials and bearer sessions (identity.py, tokens.py, session.py)
- Reading statistics (stats.py)
- Storage layer (database.py)
- CLI interface (main.py)
"""

__version__ = "1.0.0"

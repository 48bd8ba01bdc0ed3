"""VAYMN Library - core application package

This package contains:
- Data models (book.py, user.py)
- Key-value persistence (storage.py)
- Lending and fine rules (lending.py)
- Account rules (accounts.py)
- Session-bound facade used by the front ends (library.py)
- Book form smart fill and cover processing (enrichment.py, images.py)
- HTTP API (api.py) and CLI (main.py)
"""

__version__ = "1.0.0"

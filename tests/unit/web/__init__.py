"""Unit tests for cartonprice web route modules.

Pattern:
    - FastAPI TestClient against cartonprice.web.app
    - get_session patched with an AsyncMock context manager
    - Services/resolvers patched per route module
"""

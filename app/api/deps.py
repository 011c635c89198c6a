"""
FastAPI dependencies (DB session, FX provider)
"""
from app.infrastructure.db.session import get_db as _get_db
from app.infrastructure.fx.dolar_api import DolarApiFxProvider


# Re-exported so routers import all dependencies from one place
get_db = _get_db


def get_fx_provider() -> DolarApiFxProvider:
    """FX rate source for the month overview; overridden in tests."""
    return DolarApiFxProvider()

"""Router module exports."""
from src.api.routers import auth, dispatch, reports, transactions

__all__ = ["auth", "dispatch", "reports", "transactions"]

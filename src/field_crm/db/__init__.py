"""Database module for Field CRM.

Provides:
- SQLAlchemy ORM models
- Async session management and the unit-of-work runner
- Repository pattern for data access
"""
from field_crm.db.base import (
    Base,
    MoneyType,
    TimestampMixin,
    UUIDMixin,
    UUIDType,
    quantize_money,
    utcnow,
)
from field_crm.db.session import (
    close_db,
    create_test_engine,
    get_engine,
    get_session_factory,
    init_db,
    make_session_factory,
    run_transaction,
)

__all__ = [
    # Base and mixins
    "Base",
    "MoneyType",
    "TimestampMixin",
    "UUIDMixin",
    "UUIDType",
    "quantize_money",
    "utcnow",
    # Session management
    "close_db",
    "get_engine",
    "get_session_factory",
    "init_db",
    "make_session_factory",
    "run_transaction",
    # Testing
    "create_test_engine",
]

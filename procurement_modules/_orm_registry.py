"""
Module ORM Registry (``procurement_modules._orm_registry``).

Responsibility
--------------
Import every module-level SQLAlchemy ORM model so ``Base.metadata`` holds
their table definitions before tables are created.

Usage
-----
``tests/conftest.py`` and any entrypoint that needs a schema call
``create_all_tables()`` after ``init_engine_from_url()``.
"""


def import_all_orm_models() -> None:
    """Register the receiving ORM models. Idempotent."""
    import procurement_modules.receiving.orm  # noqa: F401


def create_all_tables() -> None:
    """Create every receiving table on the initialized engine."""
    from procurement_kernel.db.engine import create_tables

    import_all_orm_models()
    create_tables()

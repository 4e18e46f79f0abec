"""DDL for both database backends, shipped as package data."""

from importlib import resources

DIALECTS = ("postgres", "sqlite")


def load_schema(dialect: str) -> str:
    """Return the idempotent DDL script for a backend."""
    if dialect not in DIALECTS:
        raise ValueError(f"Unknown dialect '{dialect}'. Valid: {', '.join(DIALECTS)}")
    return resources.files(__package__).joinpath(f"{dialect}.sql").read_text(encoding="utf-8")


def apply_schema(db, dialect: str) -> None:
    """Create tables, indexes and triggers if missing."""
    db.execute_script(load_schema(dialect))

"""Import all models so Alembic can discover them via Base.metadata."""
from community_sync.infrastructure.db.models.message import MessageModel

__all__ = [
    "MessageModel",
]

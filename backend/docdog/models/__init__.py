"""Import all models so SQLAlchemy metadata knows about them."""
from docdog.models.base import Base
from docdog.models.history_record import HistoryRecordRow

__all__ = ["Base", "HistoryRecordRow"]

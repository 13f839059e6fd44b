"""HistoryRecordRow model - one uploaded document (bytes live in the blob store)."""
from sqlalchemy import String, BigInteger, Index
from sqlalchemy.orm import Mapped, mapped_column
from docdog.models.base import Base, UserMixin


class HistoryRecordRow(Base, UserMixin):
    __tablename__ = "history_records"

    storage_path: Mapped[str] = mapped_column(String(1000), primary_key=True)
    display_name: Mapped[str] = mapped_column(String(500), nullable=False)
    content_fingerprint: Mapped[str | None] = mapped_column(String(64), nullable=True)
    expire_option: Mapped[str] = mapped_column(String(20), nullable=False)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __table_args__ = (
        Index("idx_history_records_user_created", "user_id", "created_at"),
        Index("idx_history_records_user_fingerprint", "user_id", "content_fingerprint"),
    )

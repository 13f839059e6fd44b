"""Domain model for uploaded documents.

HistoryRecord is the immutable description of one stored document and
doubles as the persisted format: camelCase JSON with the expire option
written by member name.
"""
from typing import Optional

from pydantic import Field

from docdog.schemas.base import CamelModel
from docdog.services.documents import expiry
from docdog.services.documents.expiry import ExpireOption


class HistoryRecord(CamelModel):
    """One uploaded document. Frozen once created."""

    model_config = {"frozen": True}

    display_name: str
    storage_path: str = Field(min_length=1)
    content_fingerprint: Optional[str] = None
    expire_option: ExpireOption
    created_at: int = Field(ge=0)

    @property
    def expires_at(self) -> Optional[int]:
        return expiry.expires_at(self.created_at, self.expire_option)

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")

    @classmethod
    def from_dict(cls, data: dict) -> "HistoryRecord":
        return cls.model_validate(data)

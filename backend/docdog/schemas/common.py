"""Shared Pydantic schemas."""
from docdog.schemas.base import CamelModel


class DeleteResponse(CamelModel):
    deleted: bool = True
    storage_path: str = ""


class ClearResponse(CamelModel):
    removed: int = 0

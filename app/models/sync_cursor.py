from typing import Optional
from sqlalchemy import BigInteger, Column
from sqlmodel import Field, SQLModel


class SyncCursor(SQLModel, table=True):
    """Last change seen per sync topic. Readers compare `at` to decide whether to refetch."""

    __tablename__ = "sync_cursors"

    topic: str = Field(primary_key=True)
    last_id: Optional[str] = None
    last_type: str = Field(default="updated")
    at: int = Field(sa_column=Column(BigInteger, nullable=False))  # epoch milliseconds

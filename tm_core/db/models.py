from __future__ import annotations

from sqlalchemy import Index
from sqlmodel import Field, SQLModel


class SchemaMeta(SQLModel, table=True):
    __tablename__ = "schema_meta"

    key: str = Field(primary_key=True)
    value: str


class TMEntryRecord(SQLModel, table=True):
    """ORM mirror of ``tm_entries``.

    The table and its expression-based dedup index are created by migrations.
    """

    __tablename__ = "tm_entries"
    __table_args__ = (
        Index("idx_tm_entries_owner_pair", "owner_id", "source_language", "target_language"),
        Index(
            "idx_tm_entries_org_pair",
            "organization_id",
            "source_language",
            "target_language",
        ),
        Index("idx_tm_entries_hash", "source_language", "target_language", "source_hash"),
    )

    id: str = Field(primary_key=True)
    owner_id: str
    organization_id: str | None = None
    source_language: str
    target_language: str
    source_text: str
    translated_text: str
    source_hash: str
    context: str | None = None
    use_count: int = Field(default=1)
    created_at: str
    updated_at: str

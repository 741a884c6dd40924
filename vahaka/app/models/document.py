"""
Document database model.

Drivers and trips are stored as JSON documents inside named collections.
The version column backs the compare-and-swap used by every conditional
write: a write only lands if the row still carries the version it was read at.
"""

from sqlalchemy import Column, String, Integer, DateTime, JSON
from sqlalchemy.sql import func
from vahaka.app.db.session import Base

# Longest id a document can carry
MAX_DOCUMENT_ID_LENGTH = 64


class Document(Base):
    """
    Document model.

    One row per (collection, doc_id). `data` holds the camelCase record that
    clients see on the wire, including its own `id`.
    """
    __tablename__ = "documents"

    collection = Column(String(64), primary_key=True)
    doc_id = Column(String(MAX_DOCUMENT_ID_LENGTH), primary_key=True)

    data = Column(JSON, nullable=False)

    # Optimistic concurrency token, bumped on every write
    version = Column(Integer, nullable=False, default=1)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Document(collection='{self.collection}', doc_id='{self.doc_id}', version={self.version})>"

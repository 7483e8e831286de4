"""
SQLAlchemy model for the document store.

Every collection (subjects, units, studyMaterials, quizzes, questions,
quizQuestions, quizAttempts, notifications, notices, users, students,
passwordResetTokens) lives in the same table, keyed by (collection, id).
The document body is schemaless JSON; repositories own its shape.
"""

from sqlalchemy import Column, DateTime, Index, String, JSON
from sqlalchemy.sql import func

from database.database import Base


class DocumentRecord(Base):
    __tablename__ = "documents"

    collection = Column(String(64), primary_key=True)
    id = Column(String(32), primary_key=True)
    data = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (Index("ix_documents_collection", "collection"),)

    def __repr__(self):
        return f"<DocumentRecord(collection='{self.collection}', id='{self.id}')>"

from sqlalchemy import Column, DateTime, Integer, String, Text, UniqueConstraint, Index
from sqlalchemy.sql import func

from ..database import Base


class VectorRecord(Base):
    """
    One stored entity of a vector index.
    Key: (index_name, entity_id); a second upsert for the same key overwrites the row.
    """
    __tablename__ = "vector_records"

    id = Column(Integer, primary_key=True, index=True)
    index_name = Column(String(120), nullable=False)  # candidate-index | job-description-index
    entity_id = Column(String(255), nullable=False)  # email for candidates, job id for jobs
    dim = Column(Integer, nullable=False, default=0)
    vector_json = Column(Text, nullable=False)  # JSON array of floats
    metadata_json = Column(Text, nullable=False, default="{}")
    profile_text = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("index_name", "entity_id", name="uq_vector_records_index_entity"),
        Index("ix_vector_records_index", "index_name"),
    )

    def __repr__(self) -> str:
        return f"<VectorRecord(index={self.index_name}, entity={self.entity_id}, dim={self.dim})>"

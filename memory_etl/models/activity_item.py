from sqlalchemy import Column, BigInteger, Index, Integer, String, Text
from memory_etl.models.base import Base

class ActivityItem(Base):
    """A post, comment or reaction from the export's activity files."""
    __tablename__ = "activity_items"
    __table_args__ = (
        Index("idx_activity_items_kind_ts", "kind", "created_at_ms"),
        Index("idx_activity_items_source_path", "source_path"),
    )

    id = Column(String, primary_key=True)
    kind = Column(String, nullable=False)  # post | comment | reaction
    created_at_ms = Column(BigInteger)
    ordinal = Column(Integer, nullable=False, default=0)
    actor = Column(Text)
    title = Column(Text)
    body_text = Column(Text)
    target_ref = Column(Text)
    raw_meta = Column(Text)
    source_path = Column(String, nullable=False)

from sqlalchemy import Column, BigInteger, Boolean, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship
from memory_etl.models.base import Base

class Message(Base):
    __tablename__ = "messages"
    __table_args__ = (
        Index("idx_messages_conversation_ts", "conversation_id", "sent_at_ms"),
        Index("idx_messages_source_path", "source_path"),
    )

    # Deterministic hash id, see memory_etl.ingestion.identifiers
    id = Column(String, primary_key=True)
    conversation_id = Column(String, ForeignKey("conversations.conversation_id"), nullable=False)
    sender_id = Column(String)
    sent_at_ms = Column(BigInteger, nullable=False)
    ordinal = Column(Integer, nullable=False, default=0)
    body_text = Column(Text)
    msg_type = Column(String)
    is_unsent = Column(Boolean, nullable=False, default=False)
    media_uri = Column(Text)
    raw_meta = Column(Text)  # Opaque JSON passthrough (reactions, share links, ...)
    # Relative path of the file that produced this row
    source_path = Column(String, nullable=False)

    conversation = relationship("Conversation", back_populates="messages")

from sqlalchemy import Column, String, Text
from sqlalchemy.orm import relationship
from memory_etl.models.base import Base

class Conversation(Base):
    """A message thread; the id is the thread folder relative to the export root."""
    __tablename__ = "conversations"

    conversation_id = Column(String, primary_key=True)
    title = Column(Text)
    participants_json = Column(Text, nullable=False, default="[]")
    source_path = Column(String)

    messages = relationship("Message", back_populates="conversation")

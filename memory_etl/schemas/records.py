"""Normalized records produced by the parser and consumed by the store writer."""
from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, Field

from memory_etl.schemas.files import FileInfo


class ParsedConversation(BaseModel):
    conversation_id: str
    title: Optional[str] = None
    participants: List[str] = Field(default_factory=list)


class ParsedMessage(BaseModel):
    id: str  # Deterministic hash ID
    conversation_id: str
    sender_id: Optional[str] = None
    sent_at_ms: int
    ordinal: int = 0
    body_text: Optional[str] = None
    msg_type: Optional[str] = None
    is_unsent: bool = False
    media_uri: Optional[str] = None
    raw_meta: Dict[str, Any] = Field(default_factory=dict)


class ParsedActivity(BaseModel):
    id: str
    kind: str  # post | comment | reaction
    created_at_ms: Optional[int] = None
    ordinal: int = 0
    actor: Optional[str] = None
    title: Optional[str] = None
    body_text: Optional[str] = None
    target_ref: Optional[str] = None
    raw_meta: Dict[str, Any] = Field(default_factory=dict)

    @property
    def indexable_text(self) -> Optional[str]:
        # Reactions are "X liked Y"; nothing worth searching
        if self.kind == "reaction":
            return None
        return self.body_text or self.title


class ParsedFile(BaseModel):
    """Successful parse of one export file."""
    file_info: FileInfo
    conversation: Optional[ParsedConversation] = None
    messages: List[ParsedMessage] = Field(default_factory=list)
    activities: List[ParsedActivity] = Field(default_factory=list)


class ParseFailure(BaseModel):
    """One export file that could not be parsed; the run goes on without it."""
    file_info: FileInfo
    cause: str

    @property
    def path(self) -> str:
        return self.file_info.relative_path


ParseOutcome = Union[ParsedFile, ParseFailure]


class ApplyResult(BaseModel):
    """Rows touched while applying one parsed file to the store."""
    messages_written: int = 0
    activities_written: int = 0
    documents_written: int = 0
    documents_removed: int = 0

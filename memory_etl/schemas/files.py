from enum import Enum
from pathlib import Path
from pydantic import BaseModel


class FileCategory(str, Enum):
    """Kinds of export files the walker hands to the parser."""
    MESSAGES = "messages"
    POSTS = "posts"
    COMMENTS = "comments"
    REACTIONS = "reactions"


class FileInfo(BaseModel):
    file_path: Path      # Absolute
    relative_path: str   # Relative to the export root, forward slashes
    category: FileCategory
    file_size: int
    modified_at_ms: int

    @property
    def fingerprint_key(self) -> str:
        return self.file_path.as_posix()

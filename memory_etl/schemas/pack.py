"""Schemas describing a memory pack and the results of ingest/verify."""
from typing import Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field


class ManifestCounts(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    conversations: int = 0
    messages: int
    activity_items: int = Field(0, alias="activityItems")
    documents: int

    def as_dict(self) -> Dict[str, int]:
        return self.model_dump(by_alias=True)


class Manifest(BaseModel):
    """Completion record of a pack. Its presence means the store is complete."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    schema_version: int = Field(..., alias="schemaVersion")
    pack_id: str = Field(..., alias="packId", min_length=1)
    input_fingerprint: str = Field(..., alias="inputFingerprint")
    generated_at_ms: int = Field(..., alias="generatedAtMs")
    counts: ManifestCounts
    content_digest: str = Field(..., alias="contentDigest")
    files: Dict[str, str] = Field(default_factory=dict)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)


class IngestReport(BaseModel):
    """Summary of one ingestion run."""
    files_found: int = 0
    files_processed: int = 0
    files_skipped: int = 0
    files_failed: int = 0
    bytes_found: int = 0
    failures: List[Dict[str, str]] = Field(default_factory=list)  # [{"path", "cause"}]
    messages_written: int = 0
    documents_written: int = 0
    manifest: Optional[Manifest] = None


class VerifyResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ok: bool
    pack_id: Optional[str] = Field(None, alias="packId")
    fts_sample_doc_id: Optional[str] = Field(None, alias="ftsSampleDocId")
    failures: List[str] = Field(default_factory=list)
    counts: Dict[str, int] = Field(default_factory=dict)

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)

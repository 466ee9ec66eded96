"""
Apply parsed export files to the pack store.

All statements run on the caller's session; the caller owns the transaction
(one per file) and commits it together with the file's fingerprint.
"""
import json
from typing import Dict, Iterator, List, Optional, Set

from sqlalchemy import select, delete, update
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from memory_etl.exceptions import WriteError
from memory_etl.ingestion.fts_indexer import FtsIndexer
from memory_etl.ingestion.identifiers import document_id
from memory_etl.logging_config import get_logger
from memory_etl.models.activity_item import ActivityItem
from memory_etl.models.conversation import Conversation
from memory_etl.models.document import Document
from memory_etl.models.message import Message
from memory_etl.schemas.records import (
    ApplyResult,
    ParsedActivity,
    ParsedConversation,
    ParsedFile,
    ParsedMessage,
)

log = get_logger(__name__)

# Stay well below SQLite's bound-parameter limit
IN_CLAUSE_SIZE = 500


def _chunks(items: List[str], size: int = IN_CLAUSE_SIZE) -> Iterator[List[str]]:
    for i in range(0, len(items), size):
        yield items[i : i + size]


def _json_dumps(obj) -> Optional[str]:
    if not obj:
        return None
    return json.dumps(obj, sort_keys=True, ensure_ascii=False)


class StoreWriter:
    def __init__(self, session: Session, indexer: Optional[FtsIndexer] = None):
        self.session = session
        self.indexer = indexer or FtsIndexer(session)

    def apply_file(self, parsed: ParsedFile) -> ApplyResult:
        """
        Upsert one parsed file's rows and keep documents + index in step.

        Idempotent: applying the same ParsedFile twice writes nothing the
        second time.
        """
        source_path = parsed.file_info.relative_path
        result = ApplyResult()
        try:
            if parsed.conversation is not None:
                self._upsert_conversation(parsed.conversation, source_path)
            if parsed.conversation is not None or parsed.messages:
                self._apply_messages(parsed.messages, source_path, result)
            self._apply_activities(parsed.activities, source_path, result)
        except SQLAlchemyError as e:
            log.error("file_save_failed", path=source_path, error=str(e))
            raise WriteError(f"Database error while writing {source_path}: {e}")

        log.debug("file_applied", path=source_path, **result.model_dump())
        return result

    # --- conversations / messages ---

    def _upsert_conversation(self, conversation: ParsedConversation, source_path: str) -> None:
        stmt = insert(Conversation).values(
            conversation_id=conversation.conversation_id,
            title=conversation.title,
            participants_json=json.dumps(conversation.participants, ensure_ascii=False),
            source_path=source_path,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[Conversation.conversation_id],
            set_={
                "title": stmt.excluded.title,
                "participants_json": stmt.excluded.participants_json,
                "source_path": stmt.excluded.source_path,
            },
        )
        self.session.execute(stmt)

    def _message_values(self, message: ParsedMessage, source_path: str) -> dict:
        return {
            "id": message.id,
            "conversation_id": message.conversation_id,
            "sender_id": message.sender_id,
            "sent_at_ms": message.sent_at_ms,
            "ordinal": message.ordinal,
            "body_text": message.body_text,
            "msg_type": message.msg_type,
            "is_unsent": message.is_unsent,
            "media_uri": message.media_uri,
            "raw_meta": _json_dumps(message.raw_meta),
            "source_path": source_path,
        }

    def _apply_messages(self, messages: List[ParsedMessage], source_path: str, result: ApplyResult) -> None:
        ids = [m.id for m in messages]
        existing = self._existing_rows(Message, ids)
        docs = self._existing_documents([document_id("message", i) for i in ids])

        for message in messages:
            values = self._message_values(message, source_path)
            if self._upsert_row(Message, values, existing.get(message.id)):
                result.messages_written += 1
            self._sync_document("message", message.id, message.body_text, message.sent_at_ms, docs, result)

        stale = self._stale_ids(Message, source_path, set(ids))
        if stale:
            self._remove_documents([document_id("message", i) for i in stale], result)
            for chunk in _chunks(stale):
                self.session.execute(delete(Message).where(Message.id.in_(chunk)))
            log.info("stale_rows_removed", path=source_path, table="messages", count=len(stale))

    # --- posts / comments / reactions ---

    def _activity_values(self, activity: ParsedActivity, source_path: str) -> dict:
        return {
            "id": activity.id,
            "kind": activity.kind,
            "created_at_ms": activity.created_at_ms,
            "ordinal": activity.ordinal,
            "actor": activity.actor,
            "title": activity.title,
            "body_text": activity.body_text,
            "target_ref": activity.target_ref,
            "raw_meta": _json_dumps(activity.raw_meta),
            "source_path": source_path,
        }

    def _apply_activities(self, activities: List[ParsedActivity], source_path: str, result: ApplyResult) -> None:
        ids = [a.id for a in activities]
        existing = self._existing_rows(ActivityItem, ids)
        docs = self._existing_documents([document_id(a.kind, a.id) for a in activities])

        for activity in activities:
            values = self._activity_values(activity, source_path)
            if self._upsert_row(ActivityItem, values, existing.get(activity.id)):
                result.activities_written += 1
            self._sync_document(
                activity.kind, activity.id, activity.indexable_text, activity.created_at_ms, docs, result
            )

        stale_rows = self.session.execute(
            select(ActivityItem.id, ActivityItem.kind).where(ActivityItem.source_path == source_path)
        ).all()
        keep = set(ids)
        stale = [row for row in stale_rows if row.id not in keep]
        if stale:
            self._remove_documents([document_id(row.kind, row.id) for row in stale], result)
            for chunk in _chunks([row.id for row in stale]):
                self.session.execute(delete(ActivityItem).where(ActivityItem.id.in_(chunk)))
            log.info("stale_rows_removed", path=source_path, table="activity_items", count=len(stale))

    # --- shared helpers ---

    def _existing_rows(self, model, ids: List[str]) -> Dict[str, dict]:
        found = {}
        columns = [c for c in model.__table__.columns]
        for chunk in _chunks(ids):
            rows = self.session.execute(select(*columns).where(model.id.in_(chunk))).mappings()
            for row in rows:
                found[row["id"]] = dict(row)
        return found

    def _upsert_row(self, model, values: dict, current: Optional[dict]) -> bool:
        """Insert, or update when any column differs. True if a write happened."""
        if current is None:
            self.session.execute(insert(model).values(**values))
            return True
        if all(current.get(k) == v for k, v in values.items()):
            return False
        self.session.execute(update(model).where(model.id == values["id"]).values(**values))
        return True

    def _stale_ids(self, model, source_path: str, keep: Set[str]) -> List[str]:
        rows = self.session.execute(select(model.id).where(model.source_path == source_path)).scalars()
        return [row_id for row_id in rows if row_id not in keep]

    def _existing_documents(self, doc_ids: List[str]) -> Dict[str, dict]:
        found = {}
        for chunk in _chunks(doc_ids):
            rows = self.session.execute(
                select(Document.doc_id, Document.text, Document.created_at_ms).where(Document.doc_id.in_(chunk))
            )
            for row in rows:
                found[row.doc_id] = {"text": row.text, "created_at_ms": row.created_at_ms}
        return found

    def _sync_document(
        self,
        source_type: str,
        source_ref: str,
        text: Optional[str],
        created_at_ms: Optional[int],
        existing: Dict[str, dict],
        result: ApplyResult,
    ) -> None:
        doc_id = document_id(source_type, source_ref)
        current = existing.get(doc_id)

        if not text:
            # The unit lost its text: its document (and index entry) go away
            if current is not None:
                self.indexer.sync(doc_id, None)
                self.session.execute(delete(Document).where(Document.doc_id == doc_id))
                result.documents_removed += 1
                existing.pop(doc_id, None)
            return

        if current is None:
            self.session.execute(
                insert(Document).values(
                    doc_id=doc_id,
                    source_type=source_type,
                    source_ref=source_ref,
                    text=text,
                    created_at_ms=created_at_ms,
                )
            )
            self.indexer.sync(doc_id, text, is_new=True)
            result.documents_written += 1
        elif current["text"] != text or current["created_at_ms"] != created_at_ms:
            self.session.execute(
                update(Document)
                .where(Document.doc_id == doc_id)
                .values(text=text, created_at_ms=created_at_ms)
            )
            if current["text"] != text:
                self.indexer.sync(doc_id, text)
            result.documents_written += 1

        existing[doc_id] = {"text": text, "created_at_ms": created_at_ms}

    def _remove_documents(self, doc_ids: List[str], result: ApplyResult) -> None:
        present = self._existing_documents(doc_ids)
        for doc_id in present:
            self.indexer.sync(doc_id, None)
            self.session.execute(delete(Document).where(Document.doc_id == doc_id))
            result.documents_removed += 1

import sys
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.append(str(project_root))

from sqlalchemy import select

from memory_etl.config import get_settings
from memory_etl.db.store import PackStore
from memory_etl.logging_config import configure_from_settings
from memory_etl.models.document import Document
from memory_etl.retrieval.search import search_documents

configure_from_settings(get_settings(), use_stderr=True)


def main():
    if len(sys.argv) < 3:
        print("Usage: python scripts/query_pack.py <pack_dir> <query> [limit]")
        sys.exit(1)

    pack_dir = Path(sys.argv[1])
    query = sys.argv[2]
    limit = int(sys.argv[3]) if len(sys.argv) > 3 else 10

    store = PackStore.open_read_only(pack_dir / get_settings().pack.store_filename)
    try:
        with store.session() as session:
            doc_ids = search_documents(session, query, limit)
            if not doc_ids:
                print("No matches.")
                return
            texts = dict(session.execute(
                select(Document.doc_id, Document.text).where(Document.doc_id.in_(doc_ids))
            ).all())
    finally:
        store.close()

    for rank, doc_id in enumerate(doc_ids, start=1):
        snippet = texts.get(doc_id, "").replace("\n", " ")
        print(f"{rank:>3}. {doc_id}\n     {snippet[:160]}")


if __name__ == "__main__":
    main()

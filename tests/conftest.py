import pytest

from memory_etl.config import IngestSettings, PackSettings, Settings
from memory_etl.db.store import PackStore
from tests.export_builder import build_export


@pytest.fixture
def export_dir(tmp_path):
    return build_export(tmp_path / "export")


@pytest.fixture
def pack_dir(tmp_path):
    return tmp_path / "pack"


@pytest.fixture
def settings():
    return Settings(
        pack=PackSettings(),
        ingest=IngestSettings(parse_workers=1),
    )


@pytest.fixture
def store(tmp_path):
    store = PackStore(tmp_path / "store.sqlite")
    store.init_schema()
    yield store
    store.close()

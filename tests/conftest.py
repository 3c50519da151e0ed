import pytest

from tree_builder import TreeBuilder
from xml_ingestion import parse
from xml_samples import TREE_V1, TREE_V2


@pytest.fixture
def tree_v1():
    return TreeBuilder().build(parse(TREE_V1))


@pytest.fixture
def tree_v2():
    return TreeBuilder().build(parse(TREE_V2))


@pytest.fixture
def database_url(tmp_path, monkeypatch):
    url = f"sqlite+aiosqlite:///{tmp_path / 'cctm.db'}"
    monkeypatch.setenv("DATABASE_URL", url)
    return url

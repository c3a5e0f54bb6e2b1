from __future__ import annotations

from typing import Dict, List

import pytest

from catalog_sync.candidate_index import CatalogIndex
from catalog_sync.errors import AntiBotChallenge
from catalog_sync.models import Candidate, CanonicalProduct, WorkItem
from catalog_sync.repository import CatalogStore


@pytest.fixture
def store(tmp_path) -> CatalogStore:
    return CatalogStore(tmp_path / "catalog.db")


@pytest.fixture
def products() -> List[CanonicalProduct]:
    return [
        CanonicalProduct(id="c1", name="Sennheiser HD 600", category="headphone", brand="Sennheiser"),
        CanonicalProduct(id="c2", name="Sennheiser HD 650", category="headphone", brand="Sennheiser"),
        CanonicalProduct(id="c3", name="Focal Clear MG", category="headphone", brand="Focal"),
        CanonicalProduct(id="i1", name="Moondrop Blessing 3", category="iem", brand="Moondrop"),
        CanonicalProduct(id="i2", name="Sennheiser IE 600", category="iem", brand="Sennheiser"),
    ]


@pytest.fixture
def catalog(products) -> CatalogIndex:
    return CatalogIndex.from_products(products)


class FakeReader:
    """Source reader returning canned candidates per work item id."""

    def __init__(self, responses: Dict[str, object]) -> None:
        self.responses = responses
        self.calls: List[str] = []
        self.closed = False

    def search(self, item: WorkItem) -> List[Candidate]:
        self.calls.append(item.id)
        response = self.responses.get(item.id, [])
        if isinstance(response, Exception):
            raise response
        return list(response)

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_reader_factory():
    def build(responses: Dict[str, object]):
        readers: List[FakeReader] = []

        def factory() -> FakeReader:
            reader = FakeReader(responses)
            readers.append(reader)
            return reader

        factory.readers = readers
        return factory

    return build


@pytest.fixture
def challenge() -> AntiBotChallenge:
    return AntiBotChallenge("captcha page", source="test")

from __future__ import annotations

import logging

from catalog_cache.application.services.document_analyzer import DocumentAnalyzer
from catalog_cache.domain.entities.lookup_item import LookupItem

DOCUMENT = {
    "products": [
        {
            "name": "stack",
            "flavors": [
                {
                    "name": "standard",
                    "dependencies": [
                        {
                            "catalog_id": "cat-1",
                            "id": "off-1",
                            "name": "vpc",
                            "flavors": ["standard", "quickstart"],
                        },
                        {"catalog_id": "cat-1", "id": "off-2", "name": "cos"},
                    ],
                },
                {
                    "name": "quickstart",
                    "dependencies": [
                        {"catalog_id": "cat-1", "id": "off-1", "flavors": ["standard"]},
                        {"id": "off-3", "name": "no-catalog"},
                    ],
                },
            ],
        }
    ]
}


def test_extracts_catalog_offering_and_flavor_items_in_order() -> None:
    items = DocumentAnalyzer().extract(DOCUMENT)
    assert items == [
        LookupItem.catalog("cat-1"),
        LookupItem.offering("cat-1", "off-1"),
        LookupItem.flavor("cat-1", "off-1", "standard"),
        LookupItem.flavor("cat-1", "off-1", "quickstart"),
        LookupItem.offering("cat-1", "off-2"),
    ]


def test_incomplete_dependencies_are_logged_and_skipped(caplog) -> None:
    with caplog.at_level(logging.WARNING):
        items = DocumentAnalyzer().extract(DOCUMENT)
    assert all(i.value != "off-3" for i in items)
    assert any(r.getMessage() == "analyzer.incomplete_dependency" for r in caplog.records)


def test_non_container_documents_yield_nothing() -> None:
    analyzer = DocumentAnalyzer()
    assert analyzer.extract(None) == []
    assert analyzer.extract("dependencies") == []
    assert analyzer.extract({"dependencies": "not-a-list"}) == []


def test_dependencies_at_the_root_are_found() -> None:
    items = DocumentAnalyzer().extract({"dependencies": [{"catalog_id": "c", "id": "o"}]})
    assert items == [LookupItem.catalog("c"), LookupItem.offering("c", "o")]

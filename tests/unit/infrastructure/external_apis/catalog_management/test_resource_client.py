from __future__ import annotations

from typing import Any

import pytest

from catalog_cache.domain.enums.resource_kind import ResourceKind
from catalog_cache.domain.services.offering_documents import PUBLIC_CATALOGS
from catalog_cache.infrastructure.external_apis.catalog_management.resource_client import (
    CatalogResourceClient,
)

OFFERING = {
    "id": "off-1",
    "name": "vpc",
    "kinds": [
        {
            "versions": [
                {"flavor": {"name": "standard", "label": "Standard"}},
                {"flavor": {"name": "standard", "label": "Standard again"}},
                {"flavor": {"name": "quickstart", "label": "Quickstart", "index": 3}},
            ]
        }
    ],
}


class StubTransport:
    def __init__(self) -> None:
        self.calls: list[tuple[str, tuple[Any, ...]]] = []

    async def list_catalogs(self) -> list[dict[str, Any]]:
        self.calls.append(("list_catalogs", ()))
        return [
            {"id": "p1", "label": "Private"},
            {"id": "p2", "label": "Disabled", "disabled": True},
            {"id": "p3"},
        ]

    async def list_offerings(self, catalog_id: str) -> list[dict[str, Any]]:
        self.calls.append(("list_offerings", (catalog_id,)))
        return [OFFERING, {"id": "nameless"}]

    async def get_offering(self, catalog_id: str, offering_id: str) -> dict[str, Any]:
        self.calls.append(("get_offering", (catalog_id, offering_id)))
        return OFFERING


@pytest.fixture()
def resources() -> CatalogResourceClient:
    return CatalogResourceClient(StubTransport())  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_catalogs_are_public_then_enabled_private(resources: CatalogResourceClient) -> None:
    catalogs = await resources.catalogs()
    assert [c["id"] for c in catalogs] == [c["id"] for c in PUBLIC_CATALOGS] + ["p1"]
    assert catalogs[-1]["is_public"] is False


@pytest.mark.asyncio
async def test_offerings_drop_rows_without_name(resources: CatalogResourceClient) -> None:
    offerings = await resources.offerings("cat")
    assert [o["id"] for o in offerings] == ["off-1"]
    assert offerings[0]["flavors"] == ["standard", "quickstart"]


@pytest.mark.asyncio
async def test_flavor_helpers(resources: CatalogResourceClient) -> None:
    assert await resources.flavors("cat", "off-1") == ["standard", "quickstart"]
    assert (await resources.flavor_details("cat", "off-1", "standard"))["label"] == "Standard"
    assert (await resources.flavor_details("cat", "off-1", "quickstart"))["index"] == 3
    assert await resources.flavor_details("cat", "off-1", "missing") is None


def test_fetchers_cover_every_data_kind(resources: CatalogResourceClient) -> None:
    fetchers = resources.fetchers()
    assert set(fetchers) == {
        ResourceKind.CATALOG_LIST,
        ResourceKind.OFFERING_LIST,
        ResourceKind.OFFERING_DETAIL,
        ResourceKind.FLAVOR_LIST,
        ResourceKind.FLAVOR_DETAIL,
    }
    with pytest.raises(TypeError):
        fetchers[ResourceKind.API_RESPONSE] = resources.catalogs  # type: ignore[index]

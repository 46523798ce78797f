#    Copyright 2025 FAO
#
#    Licensed under the Apache License, Version 2.0 (the "License");
#    you may not use this file except in compliance with the License.
#    You may obtain a copy of the License at
#
#        http://www.apache.org/licenses/LICENSE-2.0
#
#    Unless required by applicable law or agreed to in writing, software
#    distributed under the License is distributed on an "AS IS" BASIS,
#    WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#    See the License for the specific language governing permissions and
#    limitations under the License.
#
#    Author: Carlo Cancellieri (ccancellieri@gmail.com)
#    Company: FAO, Viale delle Terme di Caracalla, 00100 Rome, Italy
#    Contact: copyright@fao.org - http://fao.org/contact-us/terms/en/

import os
import uuid
import pytest
import pytest_asyncio
from typing import Any, Dict

from postgis_mixin.models import Context, FieldDefinition, ServiceSettings

TEST_DATABASE_URL_ENV = "POSTGIS_MIXIN_TEST_DATABASE_URL"

# Coordinates in LKS-94 (EPSG:3346) space.
SQUARE = [[500000, 6000000], [500100, 6000000], [500100, 6000100], [500000, 6000100], [500000, 6000000]]
OTHER_SQUARE = [[600000, 6100000], [600050, 6100000], [600050, 6100050], [600000, 6100050], [600000, 6100000]]


def make_feature(geometry: Dict[str, Any], properties: Dict[str, Any] = None) -> Dict[str, Any]:
    return {"type": "Feature", "geometry": geometry, "properties": properties or {}}


def make_collection(*geometries: Dict[str, Any]) -> Dict[str, Any]:
    return {"type": "FeatureCollection", "features": [make_feature(g) for g in geometries]}


@pytest.fixture
def polygon() -> Dict[str, Any]:
    return {"type": "Polygon", "coordinates": [SQUARE]}


@pytest.fixture
def other_polygon() -> Dict[str, Any]:
    return {"type": "Polygon", "coordinates": [OTHER_SQUARE]}


@pytest.fixture
def point() -> Dict[str, Any]:
    return {"type": "Point", "coordinates": [500050, 6000050]}


@pytest.fixture
def single_polygon_collection(polygon):
    return make_collection(polygon)


@pytest.fixture
def two_polygon_collection(polygon, other_polygon):
    return make_collection(polygon, other_polygon)


class FakeService:
    """Bare host exposing just what the geometry components read."""

    def __init__(self, fields: Dict[str, FieldDefinition] = None, name: str = "parcels"):
        self.name = name
        self.settings = ServiceSettings(table="parcels", fields=fields or {})
        self.db_resource = object()

    async def get_db_resource(self, ctx: Context):
        return ctx.db_resource or self.db_resource


@pytest.fixture
def make_service():
    def _make(fields: Dict[str, Any] = None, name: str = "parcels") -> FakeService:
        definitions = {
            key: value if isinstance(value, FieldDefinition) else FieldDefinition(**value)
            for key, value in (fields or {}).items()
        }
        return FakeService(definitions, name=name)
    return _make


@pytest.fixture
def ctx() -> Context:
    return Context()


# --- Integration ---

def pytest_runtest_setup(item):
    """Skips 'integration' tests unless a PostGIS database is configured."""
    if item.get_closest_marker("integration") and not os.getenv(TEST_DATABASE_URL_ENV):
        pytest.skip(f"Set {TEST_DATABASE_URL_ENV} to run integration tests.")


@pytest.fixture(scope="session")
def data_id():
    """Returns a unique session ID to avoid naming collisions in the database."""
    return str(uuid.uuid4())[:8]


@pytest_asyncio.fixture(loop_scope="function")
async def engine():
    from sqlalchemy.ext.asyncio import create_async_engine

    engine = create_async_engine(os.environ[TEST_DATABASE_URL_ENV])
    yield engine
    await engine.dispose()

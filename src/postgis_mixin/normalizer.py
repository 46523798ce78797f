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

"""
Geometry Normalizer.

Turns an incoming GeoJSON document into the canonical WKT the storage layer
persists, with one round trip through the database engine.
"""

import logging
from typing import Any, Optional

from sqlalchemy import text

from postgis_mixin.db import DQLQuery, ResultHandler, escape_text_binds
from postgis_mixin.models import Context, GeometryServiceProtocol
from postgis_mixin.queries import geometries_as_text_query
from postgis_mixin.tools import geojson

logger = logging.getLogger(__name__)


def _build_geometry_text_query(conn, params: dict):
    projection = geometries_as_text_query(params["geometries"])
    sql = f"SELECT {escape_text_binds(projection)} as geom"
    return text(sql), {}


_geometry_text_query = DQLQuery.from_builder(
    _build_geometry_text_query, result_handler=ResultHandler.ONE_DICT
)


async def parse_geom(service: GeometryServiceProtocol, ctx: Context, geom: Any) -> Optional[str]:
    """
    Returns the WKT of `geom`, or None when there is nothing to store.

    Invalid documents also yield None: the entity validator is where their
    error gets reported.
    """
    if not geom:
        return None

    result = geojson.validate(geom)
    if not result.valid:
        logger.debug(f"Skipping normalization of invalid geometry: {result.error}")
        return None

    geometries = geojson.get_geometries(geom)
    if not geometries:
        return None

    db_resource = await service.get_db_resource(ctx)
    row = await _geometry_text_query.execute(db_resource, geometries=geometries)
    return row["geom"] if row else None

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
PostGIS SQL fragment builders.

Every function here returns an SQL *expression* (never a full statement) meant
to be spliced verbatim into a projection or a predicate. Identifiers and SRIDs
come from service configuration; geometry payloads are only ever embedded as
one quoted JSON literal parsed by the database (see `to_sql_json_literal`).
"""

import logging
from numbers import Number
from typing import Any, Dict, List, Optional, Union

from postgis_mixin.tools.geojson import get_geometries
from postgis_mixin.tools.json import to_sql_json_literal

logger = logging.getLogger(__name__)

DEFAULT_FIELD = '"geom"'

Geometry = Dict[str, Any]


def transform(field: Optional[str], srid: Optional[int] = None) -> Optional[str]:
    """Wraps `field` in ST_Transform when an SRID is given, otherwise returns it untouched."""
    if not srid:
        return field
    return f"ST_Transform({field or DEFAULT_FIELD}, {srid})"


def area_query(field: str, alias: Optional[str] = None, srid: Optional[int] = None) -> str:
    field = transform(field, srid)
    return f"ROUND(ST_Area({field})) as {alias or 'area'}"


def distance_query(field1: str, field2: str, alias: Optional[str] = None, srid: Optional[int] = None) -> str:
    field1 = transform(field1, srid)
    field2 = transform(field2, srid)
    return f"ROUND(ST_Distance({field1}, {field2})) as {alias or 'distance'}"


def _is_number(value: Any) -> bool:
    return isinstance(value, Number) and not isinstance(value, bool)


def as_geojson_query(
    field: str,
    alias: Optional[str] = None,
    srid: Optional[int] = None,
    opts: Optional[Dict[str, int]] = None,
) -> str:
    """
    Projects `field` as GeoJSON.

    `opts` may carry `digits` (decimal precision) and `options` (the
    ST_AsGeoJSON flags bitmask); both must be numeric to be applied.
    """
    query = transform(field, srid)
    opts = opts or {}
    if _is_number(opts.get("digits")) and _is_number(opts.get("options")):
        query = f"{query}, {opts['digits']}, {opts['options']}"
    return f"ST_AsGeoJSON({query})::json as {alias or field}"


def geometries_as_text_query(geometry: Union[Geometry, List[Geometry]], srid: Optional[int] = None) -> str:
    """
    Builds a WKT expression out of one or more GeoJSON geometries.

    Several geometries are expanded with JSON_ARRAY_ELEMENTS and collected into
    one geometry. The transform to `srid` is applied only when the source CRS
    is known: for a single geometry when it carries `crs`, for several only
    when every one of them does.
    """
    if isinstance(geometry, list) and len(geometry) == 1:
        geometry = geometry[0]

    multi = isinstance(geometry, list)
    result = to_sql_json_literal(geometry)
    if multi:
        result = f"JSON_ARRAY_ELEMENTS({result})"
        apply_transform = all(bool(g.get("crs")) for g in geometry)
    else:
        apply_transform = bool(geometry.get("crs"))

    result = f"ST_GeomFromGeoJSON({result})"

    if apply_transform and srid:
        result = transform(result, srid)

    if multi:
        result = f"ST_Collect(ARRAY(SELECT {result}))"

    return f"ST_AsText({result})"


def geom_from_text(text: str, srid: Optional[int] = None) -> str:
    if not srid:
        return f"ST_GeomFromText({text})"
    return f"ST_GeomFromText({text}, {srid})"


def intersects_query(field: str, geom: Any, srid: Optional[int] = None) -> Optional[str]:
    """
    Builds an ST_Intersects predicate between `field` and the geometries of `geom`.

    Returns None when `geom` holds no geometry, meaning no constraint applies.
    The column is transformed to `srid`; the comparison geometry is assigned
    `srid` through ST_GeomFromText.
    """
    geometries = get_geometries(geom)
    if not geometries:
        logger.debug("No geometries in intersects filter, skipping.")
        return None

    field = transform(field, srid)
    query = geometries_as_text_query(geometries)
    comparison = geom_from_text(query, srid)
    return f"ST_intersects({field or DEFAULT_FIELD}, {comparison})"

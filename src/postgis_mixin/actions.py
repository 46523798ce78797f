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
Populate Actions.

Read-side operations the host calls through a field's populate strategy.
Both take one id or a list of ids: a list yields a mapping keyed by the
stringified id, a single id yields the bare value.
"""

import logging
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import text

from postgis_mixin.db import DQLQuery, ResultHandler, escape_text_binds
from postgis_mixin.models import Context, GeometryServiceProtocol
from postgis_mixin.queries import area_query, as_geojson_query
from postgis_mixin.tools import geojson
from postgis_mixin.tools.json import parse_to_json_if_needed

logger = logging.getLogger(__name__)

# Integer coordinates, no bbox or CRS members in the GeoJSON output.
GEOJSON_OPTIONS = {"digits": 0, "options": 0}

Ids = Union[Any, List[Any]]


def _quote(name: str) -> str:
    return f'"{name}"'


def _build_select_by_ids(conn, params: dict):
    """SELECT `<id> as id, <columns>` FROM the service table, by one id or many."""
    columns = ", ".join([f'{_quote(params["id_field"])} as id', *params["columns"]])
    sql = f"SELECT {escape_text_binds(columns)} FROM {params['table']}"
    if params["multi"]:
        sql += f" WHERE {_quote(params['id_field'])} = ANY(:ids)"
        return text(sql), {"ids": list(params["ids"])}
    sql += f" WHERE {_quote(params['id_field'])} = :id"
    return text(sql), {"id": params["ids"]}


_select_by_ids_query = DQLQuery.from_builder(_build_select_by_ids, result_handler=ResultHandler.ALL_DICTS)


def _is_multi(ids: Ids) -> bool:
    return isinstance(ids, (list, tuple, set))


async def _select_by_ids(service: GeometryServiceProtocol, ctx: Context, ids: Ids, columns: List[str]) -> List[dict]:
    db_resource = await service.get_db_resource(ctx)
    return await _select_by_ids_query.execute(
        db_resource,
        table=service.settings.qualified_table,
        id_field=service.settings.id_field,
        columns=columns,
        ids=ids,
        multi=_is_multi(ids),
    )


def _shape_result(ids: Ids, result: Dict[str, Any]) -> Any:
    if _is_multi(ids):
        return result
    return result.get(str(ids))


def _normalize_properties(properties: Optional[Union[List[str], Dict[str, str]]]) -> Dict[str, str]:
    if not properties:
        return {}
    if isinstance(properties, dict):
        return dict(properties)
    return {p: p for p in properties}


async def get_feature_collection_from_geom(
    service: GeometryServiceProtocol, ctx: Context, srid: Optional[int] = None
) -> Any:
    """
    Reads the geometry column `field` of the requested rows as FeatureCollections.

    ctx.params:
      - id: one id or a list of ids.
      - field: the geometry column.
      - properties: columns surfaced as feature properties, either
        `[column]` or `{output_key: column}`.
    """
    ids = ctx.params.get("id")
    field = ctx.params.get("field")
    properties = _normalize_properties(ctx.params.get("properties"))

    columns = [as_geojson_query(_quote(field), "geom", srid, GEOJSON_OPTIONS)]
    columns += [f"{_quote(column)} as {_quote(key)}" for key, column in properties.items()]

    rows = await _select_by_ids(service, ctx, ids, columns)

    result: Dict[str, Any] = {}
    for row in rows:
        geom = parse_to_json_if_needed(row.get("geom"))
        if not isinstance(geom, dict):
            result[str(row["id"])] = None
            continue
        row_properties = {key: row.get(key) for key in properties} or None
        result[str(row["id"])] = geojson.parse({**geom, "properties": row_properties})

    return _shape_result(ids, result)


async def get_geometry_area(
    service: GeometryServiceProtocol, ctx: Context, srid: Optional[int] = None
) -> Any:
    """Reads the area of the geometry column `field`, rounded to 2 decimals."""
    ids = ctx.params.get("id")
    field = ctx.params.get("field")
    alias = ctx.params.get("as_field") or "area"

    rows = await _select_by_ids(service, ctx, ids, [area_query(_quote(field), _quote(alias), srid)])

    result: Dict[str, Any] = {}
    for row in rows:
        value = row.get(alias)
        result[str(row["id"])] = round(float(value), 2) if value is not None else None

    return _shape_result(ids, result)


def get_properties_from_feature_collection(geom: Any, property: Optional[str] = None) -> Optional[List[Any]]:
    """Collects feature properties, or the values of one named property."""
    if not geom:
        return None

    properties = [f.get("properties") for f in geojson.get_features(geom)]
    properties = [p for p in properties if p]
    if property:
        return [p.get(property) for p in properties if p.get(property)]
    return properties

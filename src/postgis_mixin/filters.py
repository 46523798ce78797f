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

import inspect
import logging

from postgis_mixin.models import Context, GeometryServiceProtocol
from postgis_mixin.tools.json import parse_to_json_if_needed

logger = logging.getLogger(__name__)


async def apply_geom_filter_function(service: GeometryServiceProtocol, ctx: Context) -> Context:
    """
    Rewrites geometry keys of `ctx.params["query"]` into raw SQL conditions.

    A key bound to a field with a `geom_filter_fn` gets that function's
    output (`{"$raw": sql}`), or an empty object when the filter holds no
    geometry. A query string that is not valid JSON is forwarded as is.
    """
    query = parse_to_json_if_needed(ctx.params.get("query"))
    if not isinstance(query, dict) or not query:
        return ctx

    fields = service.settings.fields
    for key in list(query.keys()):
        field = fields.get(key)
        if field is None or field.geom_filter_fn is None:
            continue

        clause = field.geom_filter_fn(value=query[key], field=field, query=query)
        if inspect.isawaitable(clause):
            clause = await clause
        query[key] = clause or {}
        logger.debug(f"Rewrote geometry filter '{key}' -> {query[key]}")

    ctx.params["query"] = query
    return ctx

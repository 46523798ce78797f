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
Reference record service.

A small host for the geometry components: it owns a field schema and a
table, dispatches actions, runs before-hooks, applies field setters on
write and serves populate strategies on read. Rows are written and read
through SQLAlchemy `text()` statements.
"""

import inspect
import logging
from collections import defaultdict
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import text

from postgis_mixin.config import GeometryFieldConfig, GeometryFieldType
from postgis_mixin.db import DbResource, DQLQuery, ResultHandler, escape_text_binds, managed_transaction
from postgis_mixin.models import Context, FieldDefinition, ServiceSettings
from postgis_mixin.queries import geom_from_text

logger = logging.getLogger(__name__)

RAW_KEY = "$raw"


def _quote(name: str) -> str:
    return f'"{name}"'


async def _maybe_await(value: Any) -> Any:
    return await value if inspect.isawaitable(value) else value


def _is_geometry_column(field: FieldDefinition) -> bool:
    return isinstance(field.geom, GeometryFieldConfig) and field.geom.type == GeometryFieldType.GEOM.value

# ============================================================================
# QUERY BUILDERS
# ============================================================================

def _build_insert(conn, params: dict):
    columns = params["columns"]
    names = ", ".join(_quote(c["column"]) for c in columns)
    values = ", ".join(c["expression"] for c in columns)
    id_column = _quote(params["id_field"])
    if columns:
        sql = f"INSERT INTO {params['table']} ({names}) VALUES ({values}) RETURNING {id_column} as id"
    else:
        sql = f"INSERT INTO {params['table']} DEFAULT VALUES RETURNING {id_column} as id"
    return text(sql), params["binds"]


def _build_update(conn, params: dict):
    assignments = ", ".join(f"{_quote(c['column'])} = {c['expression']}" for c in params["columns"])
    id_column = _quote(params["id_field"])
    sql = f"UPDATE {params['table']} SET {assignments} WHERE {id_column} = :id RETURNING {id_column} as id"
    return text(sql), {**params["binds"], "id": params["id"]}


def _build_select(conn, params: dict):
    sql = f"SELECT {', '.join(params['columns'])} FROM {params['table']}"
    if params["conditions"]:
        sql += " WHERE " + " AND ".join(params["conditions"])
    if params.get("order_by"):
        sql += f" ORDER BY {params['order_by']}"
    if params.get("limit") is not None:
        sql += " LIMIT :limit"
        params["binds"]["limit"] = params["limit"]
    if (params.get("offset") or 0) > 0:
        sql += " OFFSET :offset"
        params["binds"]["offset"] = params["offset"]
    return text(sql), params["binds"]


def _build_count(conn, params: dict):
    sql = f"SELECT COUNT(*) FROM {params['table']}"
    if params["conditions"]:
        sql += " WHERE " + " AND ".join(params["conditions"])
    return text(sql), params["binds"]


_insert_query = DQLQuery.from_builder(_build_insert, result_handler=ResultHandler.SCALAR_ONE)
_update_query = DQLQuery.from_builder(_build_update, result_handler=ResultHandler.SCALAR)
_select_query = DQLQuery.from_builder(_build_select, result_handler=ResultHandler.ALL_DICTS)
_count_query = DQLQuery.from_builder(_build_count, result_handler=ResultHandler.SCALAR_ONE)

# ============================================================================
# SERVICE
# ============================================================================

class RecordService:
    """
    A record service over one table.

    Mixins contribute actions, methods (set as attributes of the service),
    before-hooks and a start hook through their `schema(service)`.
    """
    BUILTIN_ACTIONS = ("create", "update", "replace", "get", "find", "list")

    def __init__(
        self,
        name: str,
        settings: ServiceSettings,
        db_resource: Optional[DbResource] = None,
        mixins: Iterable[Any] = (),
    ):
        self.name = name
        self.settings = settings
        self.db_resource = db_resource
        self.actions: Dict[str, Callable[..., Any]] = {}
        self.hooks: Dict[str, Dict[str, List[Callable[..., Any]]]] = {"before": defaultdict(list)}
        self._started_hooks: List[Callable[[], Any]] = []

        for mixin in mixins:
            schema = mixin.schema(self)
            self.actions.update(schema.actions)
            for method_name, method in schema.methods.items():
                setattr(self, method_name, method)
            for action_name, hooks in schema.hooks.get("before", {}).items():
                self.hooks["before"][action_name].extend(hooks)
            if schema.started:
                self._started_hooks.append(schema.started)

    async def get_db_resource(self, ctx: Context) -> DbResource:
        resource = ctx.db_resource or self.db_resource
        if resource is None:
            raise RuntimeError(f"Service '{self.name}' has no database resource.")
        return resource

    async def started(self) -> None:
        for hook in self._started_hooks:
            await _maybe_await(hook())
        logger.info(f"Service '{self.name}' started.")

    async def call(self, action: str, ctx: Context) -> Any:
        """Dispatches `action` (`name` or `<service>.name`) with `ctx`."""
        service_name, _, action_name = action.rpartition(".")
        if service_name and service_name != self.name:
            raise ValueError(f"Service '{self.name}' cannot dispatch action '{action}'.")

        if action_name in self.actions:
            return await _maybe_await(self.actions[action_name](ctx))

        builtin = getattr(self, action_name, None) if action_name in self.BUILTIN_ACTIONS else None
        if builtin is None:
            raise ValueError(f"Action '{action}' is not registered on service '{self.name}'.")
        return await builtin(ctx)

    async def _run_before_hooks(self, action: str, ctx: Context) -> Context:
        for hook in self.hooks["before"].get(action, []):
            result = await _maybe_await(hook(ctx))
            ctx = result if isinstance(result, Context) else ctx
        return ctx

    # --- Writes ---

    def _writable_fields(self) -> Dict[str, FieldDefinition]:
        return {
            key: field for key, field in self.settings.fields.items()
            if not field.virtual and key != self.settings.id_field
        }

    async def _prepare_columns(self, ctx: Context, skip_empty_geometry: bool) -> Tuple[List[dict], dict]:
        columns, binds = [], {}
        for index, (key, field) in enumerate(self._writable_fields().items()):
            if key not in ctx.params:
                continue
            value = ctx.params[key]
            is_geometry = _is_geometry_column(field)
            if is_geometry and not value and skip_empty_geometry:
                continue
            if field.set_fn is not None:
                value = await _maybe_await(field.set_fn(value=value, ctx=ctx, field=field, params=ctx.params))

            bind = f"p_{index}"
            if is_geometry:
                binds[bind] = value or None
                expression = geom_from_text(f"CAST(:{bind} AS text)", self.settings.storage_srid)
            else:
                binds[bind] = value
                expression = f":{bind}"
            columns.append({"column": field.storage_column, "expression": expression})
        return columns, binds

    async def _load_entity(self, ctx: Context, entity_id: Any) -> Optional[dict]:
        """Loads the stored row, geometry columns as WKT."""
        columns = [f"{_quote(self.settings.id_field)} as id"]
        for key, field in self._writable_fields().items():
            column = _quote(field.storage_column)
            columns.append(f"ST_AsText({column}) as {_quote(key)}" if _is_geometry_column(field) else f"{column} as {_quote(key)}")
        rows = await _select_query.execute(
            await self.get_db_resource(ctx),
            table=self.settings.qualified_table,
            columns=columns,
            conditions=[f"{_quote(self.settings.id_field)} = :id"],
            binds={"id": entity_id},
        )
        return rows[0] if rows else None

    async def create(self, ctx: Context) -> Optional[dict]:
        ctx = await self._run_before_hooks("create", ctx)
        columns, binds = await self._prepare_columns(ctx, skip_empty_geometry=False)
        async with managed_transaction(await self.get_db_resource(ctx)) as conn:
            entity_id = await _insert_query.execute(
                conn,
                table=self.settings.qualified_table,
                id_field=self.settings.id_field,
                columns=columns,
                binds=binds,
            )
        logger.debug(f"Service '{self.name}': created entity {entity_id}.")
        return await self.get(ctx.child({"id": entity_id, "populate": ctx.params.get("populate")}))

    async def _write_existing(self, action: str, ctx: Context) -> Optional[dict]:
        entity_id = ctx.params.get("id")
        if entity_id is None:
            raise ValueError(f"Action '{action}' requires an 'id'.")
        entity = await self._load_entity(ctx, entity_id)
        if entity is None:
            raise LookupError(f"Entity '{entity_id}' not found in service '{self.name}'.")
        ctx.locals["entity"] = entity

        ctx = await self._run_before_hooks(action, ctx)
        columns, binds = await self._prepare_columns(ctx, skip_empty_geometry=action == "update")
        if columns:
            async with managed_transaction(await self.get_db_resource(ctx)) as conn:
                await _update_query.execute(
                    conn,
                    table=self.settings.qualified_table,
                    id_field=self.settings.id_field,
                    columns=columns,
                    binds=binds,
                    id=entity_id,
                )
        return await self.get(ctx.child({"id": entity_id, "populate": ctx.params.get("populate")}))

    async def update(self, ctx: Context) -> Optional[dict]:
        return await self._write_existing("update", ctx)

    async def replace(self, ctx: Context) -> Optional[dict]:
        return await self._write_existing("replace", ctx)

    # --- Reads ---

    def _read_columns(self) -> List[str]:
        columns = [f"{_quote(self.settings.id_field)} as id"]
        for key, field in self.settings.fields.items():
            if field.virtual or _is_geometry_column(field) or key == self.settings.id_field:
                continue
            columns.append(f"{_quote(field.storage_column)} as {_quote(key)}")
        return columns

    def _query_conditions(self, query: Any) -> Tuple[List[str], dict]:
        """
        Turns a filter mapping into WHERE conditions.

        `{"$raw": sql}` is used verbatim only under a key whose field has a
        geometry filter function: the rewriter has replaced that value with SQL
        it built itself. Other mapping values, and a filter that is not a
        mapping at all, impose no constraint.
        """
        conditions, binds = [], {}
        if not isinstance(query, dict):
            if query:
                logger.debug(f"Service '{self.name}': ignoring non-object filter {query!r}.")
            return conditions, binds

        for index, (key, value) in enumerate(query.items()):
            field = self.settings.fields.get(key)
            if isinstance(value, dict):
                if field is not None and field.geom_filter_fn is not None and value.get(RAW_KEY):
                    conditions.append(f"({escape_text_binds(value[RAW_KEY])})")
                elif value:
                    logger.debug(f"Service '{self.name}': ignoring object filter on '{key}'.")
                continue

            if field is None and key != self.settings.id_field:
                logger.debug(f"Service '{self.name}': ignoring unknown filter key '{key}'.")
                continue
            column = _quote(field.storage_column if field else key)
            bind = f"q_{index}"
            binds[bind] = list(value) if isinstance(value, (list, tuple, set)) else value
            conditions.append(f"{column} = ANY(:{bind})" if isinstance(value, (list, tuple, set)) else f"{column} = :{bind}")
        return conditions, binds

    async def _populate(self, ctx: Context, rows: List[dict], populate: Any) -> List[dict]:
        if not rows or not populate:
            return rows
        keys = [populate] if isinstance(populate, str) else list(populate)

        for key in keys:
            field = self.settings.fields.get(key)
            if field is None or field.populate is None:
                continue
            strategy = field.populate
            ids = [row[strategy.key_field] for row in rows]
            values = await self.call(strategy.action, ctx.child({**strategy.params, "id": ids})) or {}
            for row in rows:
                row[key] = values.get(str(row[strategy.key_field]))
        return rows

    async def _select(self, ctx: Context, conditions: List[str], binds: dict, **kwargs) -> List[dict]:
        return await _select_query.execute(
            await self.get_db_resource(ctx),
            table=self.settings.qualified_table,
            columns=self._read_columns(),
            conditions=conditions,
            binds=binds,
            order_by=_quote(self.settings.id_field),
            **kwargs,
        )

    async def get(self, ctx: Context) -> Any:
        entity_id = ctx.params.get("id")
        multi = isinstance(entity_id, (list, tuple, set))
        conditions, binds = self._query_conditions({self.settings.id_field: entity_id})
        rows = await self._select(ctx, conditions, binds)
        rows = await self._populate(ctx, rows, ctx.params.get("populate"))
        if multi:
            return rows
        return rows[0] if rows else None

    async def find(self, ctx: Context) -> List[dict]:
        ctx = await self._run_before_hooks("find", ctx)
        conditions, binds = self._query_conditions(ctx.params.get("query"))
        rows = await self._select(
            ctx, conditions, binds, limit=ctx.params.get("limit"), offset=ctx.params.get("offset")
        )
        return await self._populate(ctx, rows, ctx.params.get("populate"))

    async def list(self, ctx: Context) -> Dict[str, Any]:
        ctx = await self._run_before_hooks("list", ctx)
        page = max(int(ctx.params.get("page") or 1), 1)
        page_size = max(int(ctx.params.get("page_size") or 10), 1)
        conditions, binds = self._query_conditions(ctx.params.get("query"))

        rows = await self._select(ctx, conditions, dict(binds), limit=page_size, offset=(page - 1) * page_size)
        rows = await self._populate(ctx, rows, ctx.params.get("populate"))
        total = await _count_query.execute(
            await self.get_db_resource(ctx),
            table=self.settings.qualified_table,
            conditions=conditions,
            binds=dict(binds),
        )
        return {"rows": rows, "total": total, "page": page, "page_size": page_size}

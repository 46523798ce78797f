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
Statement execution for the geometry components.

A `DQLQuery` pairs a builder, `(conn, params) -> (text(sql), binds)`, with a
result recipe. It runs on whatever resource the host hands over: a sync or
async engine (a connection is checked out for the statement) or an already
open connection.
"""

import inspect
import logging
from contextlib import asynccontextmanager
from typing import Any, Callable, Dict, Tuple, Union

from sqlalchemy.engine import Connection, Engine
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine
from sqlalchemy.sql.elements import TextClause

from postgis_mixin.exceptions import PGCODE_EXCEPTION_MAP, QueryExecutionError

logger = logging.getLogger(__name__)

DbResource = Union[Engine, Connection, AsyncEngine, AsyncConnection]
Statement = Tuple[TextClause, Dict[str, Any]]
StatementBuilder = Callable[[Any, Dict[str, Any]], Statement]


def is_async_resource(db_resource: DbResource) -> bool:
    return isinstance(db_resource, (AsyncEngine, AsyncConnection))


def escape_text_binds(sql: str) -> str:
    """
    Escapes every colon of a raw SQL fragment so that ``text()`` does not read
    JSON literals such as ``"x":1`` as ``:1`` bind parameters.
    Casts (``::json``) survive: each escaped colon renders back as itself.
    """
    return sql.replace(":", "\\:")


class ResultHandler:
    """How a statement's result is turned into the value the caller gets."""
    SCALAR = staticmethod(lambda r: r.scalar())
    SCALAR_ONE = staticmethod(lambda r: r.scalar_one())
    ALL_DICTS = staticmethod(lambda r: [row._asdict() for row in r.all()])
    ONE_DICT = staticmethod(lambda r: (row._asdict() if (row := r.fetchone()) else None))
    NONE = staticmethod(lambda r: None)


def _raise_database_error(e: Exception) -> None:
    """Maps a driver error to the exception registered for its PostgreSQL code."""
    original = getattr(e, "orig", None)
    pgcode = getattr(original, "pgcode", None) or getattr(original, "sqlstate", None)
    if pgcode in PGCODE_EXCEPTION_MAP:
        raise PGCODE_EXCEPTION_MAP[pgcode](f"Database error ({pgcode})", original_exception=original) from e
    raise QueryExecutionError("Database query failed.", original_exception=original or e) from e


@asynccontextmanager
async def managed_transaction(db_resource: DbResource):
    """Opens a transaction on an engine, or a (nested) one on an open connection."""
    if isinstance(db_resource, AsyncEngine):
        async with db_resource.begin() as conn:
            yield conn
    elif isinstance(db_resource, Engine):
        with db_resource.begin() as conn:
            yield conn
    elif isinstance(db_resource, AsyncConnection):
        begin = db_resource.begin_nested if db_resource.in_transaction() else db_resource.begin
        async with begin():
            yield db_resource
    else:
        begin = db_resource.begin_nested if db_resource.in_transaction() else db_resource.begin
        with begin():
            yield db_resource


class DQLQuery:
    """A reusable statement: a builder function plus the recipe that shapes its result."""

    def __init__(self, builder: StatementBuilder, *, result_handler: Callable[[Any], Any] = ResultHandler.NONE):
        self.builder = builder
        self.result_handler = result_handler

    @classmethod
    def from_builder(cls, builder: StatementBuilder, **kwargs) -> "DQLQuery":
        return cls(builder, **kwargs)

    def build(self, conn: Any, **params) -> Statement:
        """Runs the builder alone, without touching the database."""
        if inspect.iscoroutinefunction(self.builder):
            raise TypeError("DQLQuery builders must be synchronous.")
        return self.builder(conn, params)

    async def execute(self, db_resource: DbResource, **params) -> Any:
        if isinstance(db_resource, str):
            raise TypeError(f"DQLQuery: expected a database resource, got string '{db_resource}'.")

        if isinstance(db_resource, AsyncEngine):
            async with db_resource.connect() as conn:
                return await self._run_async(conn, params)
        if is_async_resource(db_resource):
            return await self._run_async(db_resource, params)
        if isinstance(db_resource, Engine):
            with db_resource.connect() as conn:
                return self._run_sync(conn, params)
        return self._run_sync(db_resource, params)

    async def _run_async(self, conn: AsyncConnection, params: Dict[str, Any]) -> Any:
        statement, binds = self.build(conn, **params)
        logger.debug(f"Executing: {statement}")
        try:
            result = await conn.execute(statement, binds)
        except Exception as e:
            _raise_database_error(e)
        return self.result_handler(result)

    def _run_sync(self, conn: Connection, params: Dict[str, Any]) -> Any:
        statement, binds = self.build(conn, **params)
        logger.debug(f"Executing: {statement}")
        try:
            result = conn.execute(statement, binds)
        except Exception as e:
            _raise_database_error(e)
        return self.result_handler(result)

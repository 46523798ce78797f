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
Field Behavior Binder.

Runs once when the service starts. Every field declaring `geom` gets the
runtime hooks matching its configuration type; afterwards the field
definitions are only read.
"""

import logging
from typing import Any, Callable, Dict, Optional

from postgis_mixin.config import GeometryFieldConfig, GeometryFieldType, PostgisMixinSettings
from postgis_mixin.exceptions import GeometryConfigurationError
from postgis_mixin.models import Context, FieldDefinition, GeometryServiceProtocol, PopulateStrategy
from postgis_mixin.normalizer import parse_geom
from postgis_mixin.queries import intersects_query
from postgis_mixin.tools.json import parse_to_json_if_needed
from postgis_mixin.validation import default_geometry_validator

logger = logging.getLogger(__name__)

FEATURE_COLLECTION_ACTION = "_get_feature_collection_from_geom"
AREA_ACTION = "_get_geometry_area"


def quote_column(name: str) -> str:
    return f'"{name}"'


def _resolve_validator(service: GeometryServiceProtocol, key: str, config: GeometryFieldConfig) -> Callable[..., Any]:
    """Resolves `validate` into one callable: the default, a service method, or the given function."""
    validator = config.validate_with
    if validator is None:
        return default_geometry_validator
    if isinstance(validator, str):
        method = getattr(service, validator, None)
        if not callable(method):
            raise GeometryConfigurationError(
                f"Validator '{validator}' of field '{key}' is not a method of service '{service.name}'",
                field=key,
            )
        return method
    return validator


def _bind_geom(
    service: GeometryServiceProtocol,
    field: FieldDefinition,
    key: str,
    config: GeometryFieldConfig,
    settings: PostgisMixinSettings,
) -> None:
    column = config.column_name or field.column_name or key
    properties = config.properties

    field.populate = PopulateStrategy(
        key_field="id",
        action=f"{service.name}.{FEATURE_COLLECTION_ACTION}",
        params={"properties": properties, "field": column},
    )

    async def set_fn(*, value: Any, ctx: Context, **_) -> Any:
        return (await parse_geom(service, ctx, value)) or value

    def geom_filter_fn(*, value: Any, **_) -> Optional[Dict[str, str]]:
        sql = intersects_query(quote_column(column), parse_to_json_if_needed(value), settings.srid)
        return {"$raw": sql} if sql else None

    field.set_fn = set_fn
    field.geom_filter_fn = geom_filter_fn
    field.validate_fn = _resolve_validator(service, key, config)


def _bind_area(
    service: GeometryServiceProtocol,
    field: FieldDefinition,
    key: str,
    config: GeometryFieldConfig,
) -> None:
    field.populate = PopulateStrategy(
        key_field="id",
        action=f"{service.name}.{AREA_ACTION}",
        params={"field": config.field or key, "as_field": key},
    )
    field.virtual = True


def apply_geom_to_field(
    service: GeometryServiceProtocol,
    field: FieldDefinition,
    key: str,
    settings: PostgisMixinSettings,
) -> FieldDefinition:
    if not isinstance(field.geom, GeometryFieldConfig):
        field.geom = GeometryFieldConfig()
    config = field.geom

    if config.type == GeometryFieldType.GEOM.value:
        _bind_geom(service, field, key, config, settings)
    elif config.type == GeometryFieldType.AREA.value:
        _bind_area(service, field, key, config)
    else:
        raise GeometryConfigurationError(
            f"Geometry type '{config.type}' of field '{key}' is not supported", field=key
        )

    logger.info(f"Service '{service.name}': bound '{config.type}' behavior to field '{key}'.")
    return field


def bind_geometry_fields(service: GeometryServiceProtocol, settings: PostgisMixinSettings) -> None:
    """Applies geometry behavior to every field of `service` that declares `geom`."""
    for key, field in service.settings.fields.items():
        if field.geom:
            apply_geom_to_field(service, field, key, settings)

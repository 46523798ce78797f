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
Entity Validator.

Runs before create, update and replace. Each geometry field carries a
validator bound at service start; the first failure aborts the write.
"""

import inspect
import logging
from typing import Any, Optional, Union

from postgis_mixin.config import GeometryFieldConfig
from postgis_mixin.exceptions import FieldValidationError
from postgis_mixin.models import Context, FieldDefinition, GeometryServiceProtocol
from postgis_mixin.tools import geojson

logger = logging.getLogger(__name__)

DEFAULT_ERROR_MESSAGE = "Invalid geometry"
SINGLE_FEATURE_MESSAGE = "Feature collection accepts only one feature"


def default_geometry_validator(
    *, value: Any, field: FieldDefinition, entity: Optional[dict] = None, **_
) -> Union[bool, str]:
    """
    Returns True for an acceptable geometry, otherwise the error message.

    An empty value is accepted when the stored entity already holds a
    geometry for this field (a partial update that leaves it alone).
    """
    if entity and entity.get(field.name) and not value:
        return True

    config = field.geom if isinstance(field.geom, GeometryFieldConfig) else GeometryFieldConfig()

    if not config.multi and len(geojson.get_features(value)) > 1:
        return SINGLE_FEATURE_MESSAGE

    if config.types and not geojson.validate_geometry_types(config.types, value).valid:
        return f"Invalid geometry types. Available - {','.join(config.types)}"

    result = geojson.validate(value)
    return True if result.valid else result.error


async def validate_geom_fields(service: GeometryServiceProtocol, ctx: Context) -> Context:
    params = ctx.params
    entity = ctx.locals.get("entity")

    for key, field in service.settings.fields.items():
        if field.validate_fn is None or key not in params:
            continue

        value = params[key]
        result = field.validate_fn(value=value, field=field, ctx=ctx, params=params, entity=entity)
        if inspect.isawaitable(result):
            result = await result

        if result is True:
            continue

        message = result or DEFAULT_ERROR_MESSAGE
        logger.warning(f"Service '{service.name}': geometry field '{key}' rejected: {message}")
        raise FieldValidationError(key, value, message)

    return ctx

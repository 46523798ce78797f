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

import logging
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Optional, Union

import orjson

logger = logging.getLogger(__name__)


def orjson_default(obj: Any) -> Any:
    """
    Default serializer for orjson, handling types it doesn't natively support.

    - Shapely geometries (anything with `__geo_interface__`) become their GeoJSON mapping.
    - Decimals from numeric columns become floats.
    """
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, uuid.UUID):
        return str(obj)
    if isinstance(obj, Decimal):
        return float(obj)
    if hasattr(obj, '__geo_interface__'):
        return obj.__geo_interface__
    if hasattr(obj, 'model_dump') and callable(obj.model_dump):
        return obj.model_dump(exclude_none=True)
    raise TypeError


def dumps(obj: Any) -> str:
    return orjson.dumps(obj, default=orjson_default).decode("utf-8")


def to_sql_json_literal(obj: Any) -> str:
    """
    Serializes `obj` to JSON and wraps it in a single-quoted SQL string literal.

    The JSON encoder escapes double quotes and control characters; single
    quotes are doubled here, so the payload can never terminate the literal.
    """
    return "'" + dumps(obj).replace("'", "''") + "'"


def parse_to_json_if_needed(value: Union[Dict[str, Any], str, None]) -> Optional[Any]:
    """
    Decodes `value` when it is a JSON string.

    Empty values yield None. Strings that are not valid JSON are returned
    unchanged, the caller decides what an opaque string means.
    """
    if not value:
        return None

    if isinstance(value, (str, bytes)):
        try:
            return orjson.loads(value)
        except orjson.JSONDecodeError:
            logger.debug("Value is not valid JSON, forwarding it unchanged.")
            return value

    return value

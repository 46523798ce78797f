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
Mixin Settings and Geometry Field Configuration.

Both models are frozen: they are resolved once when the service starts and
only read afterwards, so concurrent request handlers can share them.
"""

from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ============================================================================
# ENUMS
# ============================================================================

class GeometryFieldType(str, Enum):
    GEOM = "geom"
    AREA = "area"

# ============================================================================
# CONFIGURATION
# ============================================================================

class PostgisMixinSettings(BaseSettings):
    """
    Settings for one PostGIS mixin instance.
    Loaded from environment variables prefixed with POSTGIS_MIXIN_.
    """
    # SRID every generated transform targets (LKS-94 by default).
    srid: int = 3346

    model_config = SettingsConfigDict(
        env_prefix="POSTGIS_MIXIN_",
        case_sensitive=False,
        frozen=True,
    )


class GeometryFieldConfig(BaseModel):
    """Geometry behavior declared on a field through its `geom` attribute."""
    # Kept as a plain string: unsupported values are reported at bind time.
    type: str = Field(GeometryFieldType.GEOM.value, description="'geom' or 'area'")
    multi: bool = Field(False, description="Accept more than one feature")
    types: List[str] = Field(default_factory=list, description="Allowed geometry types, empty means any")
    properties: Optional[Union[List[str], Dict[str, str]]] = Field(
        None, description="Columns surfaced as feature properties on read ({output_key: column} or [column])"
    )
    column_name: Optional[str] = Field(None, alias="columnName", description="Physical storage column")
    field: Optional[str] = Field(None, description="Source geometry column of an 'area' field")
    validate_with: Optional[Union[str, Callable[..., Any]]] = Field(
        None, alias="validate", description="Validator: None for the default, a service method name, or a callable"
    )

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    @field_validator("types", mode="before")
    @classmethod
    def _normalize_types(cls, v):
        if v is None:
            return []
        return [getattr(t, "value", t) for t in v]

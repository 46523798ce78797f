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

from typing import Any, Callable, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from postgis_mixin.config import GeometryFieldConfig


class PopulateStrategy(BaseModel):
    """Tells the host how to fetch a field's value after the primary read."""
    key_field: str = "id"
    action: str  # "<service>.<action>"
    params: Dict[str, Any] = Field(default_factory=dict)


class FieldDefinition(BaseModel):
    """
    A field descriptor of the host service.

    Geometry behavior is declared through `geom`; the binder then fills the
    runtime hooks (`populate`, `set_fn`, `geom_filter_fn`, `validate_fn`).
    """
    name: Optional[str] = None
    type: str = "any"
    column_name: Optional[str] = Field(None, alias="columnName")
    geom: Optional[Union[GeometryFieldConfig, bool]] = None

    # Bound at service start
    populate: Optional[PopulateStrategy] = None
    set_fn: Optional[Callable[..., Any]] = None
    geom_filter_fn: Optional[Callable[..., Any]] = None
    validate_fn: Optional[Callable[..., Any]] = None
    virtual: bool = False  # computed on read, never written

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    @property
    def storage_column(self) -> str:
        return self.column_name or self.name

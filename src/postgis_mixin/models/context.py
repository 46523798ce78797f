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

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, model_validator

from postgis_mixin.models.fields import FieldDefinition


@dataclass
class Context:
    """One request: its parameters plus the database resource it runs on."""
    params: Dict[str, Any] = field(default_factory=dict)
    meta: Dict[str, Any] = field(default_factory=dict)
    locals: Dict[str, Any] = field(default_factory=dict)
    db_resource: Optional[Any] = None

    def child(self, params: Dict[str, Any]) -> "Context":
        """A sub-request sharing this request's meta and database resource."""
        return Context(params=params, meta=self.meta, db_resource=self.db_resource)


class ServiceSettings(BaseModel):
    """Table binding and field schema of a record service."""
    fields: Dict[str, FieldDefinition] = Field(default_factory=dict)
    table: str
    schema_name: Optional[str] = None
    id_field: str = "id"
    # SRID handed to ST_GeomFromText when writing canonical geometry text
    storage_srid: Optional[int] = None

    @model_validator(mode="after")
    def _name_fields(self):
        for key, definition in self.fields.items():
            if definition.name is None:
                definition.name = key
        return self

    @property
    def qualified_table(self) -> str:
        if self.schema_name:
            return f'"{self.schema_name}"."{self.table}"'
        return f'"{self.table}"'

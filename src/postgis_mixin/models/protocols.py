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

from typing import Protocol, runtime_checkable

from postgis_mixin.db.query_executor import DbResource
from postgis_mixin.models.context import Context, ServiceSettings


@runtime_checkable
class GeometryServiceProtocol(Protocol):
    """
    What the geometry components need from the service they are mixed into.

    ---
    - `name`: used to address the service's own actions in populate strategies.
    - `settings`: the field schema and the table the service owns.
    - `get_db_resource(ctx)`: the engine or connection for this request.
    ---
    """
    name: str
    settings: ServiceSettings

    async def get_db_resource(self, ctx: Context) -> DbResource:
        ...

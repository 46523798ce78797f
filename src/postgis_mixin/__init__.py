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

from postgis_mixin.queries import (
    DEFAULT_FIELD,
    area_query,
    as_geojson_query,
    distance_query,
    geom_from_text,
    geometries_as_text_query,
    intersects_query,
    transform,
)
from postgis_mixin.tools.geojson import GeometryType
from postgis_mixin.config import GeometryFieldConfig, GeometryFieldType, PostgisMixinSettings
from postgis_mixin.exceptions import FieldValidationError, GeometryConfigurationError
from postgis_mixin.mixin import PostgisMixin

__version__ = "0.1.0"

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
PostGIS mixin.

`PostgisMixin(settings).schema(service)` returns what a host service merges
into itself: the populate actions, the helper methods, the before-hooks of
list/find (filter rewrite) and create/update/replace (validation), and the
start hook binding geometry behavior to the declared fields.
"""

import logging
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Callable, Dict, List, Optional

from postgis_mixin import actions, filters, normalizer, validation
from postgis_mixin.config import PostgisMixinSettings
from postgis_mixin.field_binder import AREA_ACTION, FEATURE_COLLECTION_ACTION, bind_geometry_fields
from postgis_mixin.models import GeometryServiceProtocol

logger = logging.getLogger(__name__)

FILTER_HOOK_ACTIONS = ("list", "find")
VALIDATION_HOOK_ACTIONS = ("create", "update", "replace")


@dataclass
class MixinSchema:
    actions: Dict[str, Callable[..., Any]] = field(default_factory=dict)
    methods: Dict[str, Callable[..., Any]] = field(default_factory=dict)
    # {"before": {action_name: [hook, ...]}}
    hooks: Dict[str, Dict[str, List[Callable[..., Any]]]] = field(default_factory=dict)
    started: Optional[Callable[[], Any]] = None


class PostgisMixin:
    def __init__(self, settings: Optional[PostgisMixinSettings] = None):
        self.settings = settings or PostgisMixinSettings()

    @property
    def srid(self) -> int:
        return self.settings.srid

    def schema(self, service: GeometryServiceProtocol) -> MixinSchema:
        """Binds every component to `service` and this mixin's SRID."""
        srid = self.settings.srid

        apply_filter = partial(filters.apply_geom_filter_function, service)
        validate_fields = partial(validation.validate_geom_fields, service)

        def started() -> None:
            logger.info(f"Service '{service.name}': PostGIS mixin started (srid={srid}).")
            bind_geometry_fields(service, self.settings)

        return MixinSchema(
            actions={
                FEATURE_COLLECTION_ACTION: partial(actions.get_feature_collection_from_geom, service, srid=srid),
                AREA_ACTION: partial(actions.get_geometry_area, service, srid=srid),
            },
            methods={
                "_apply_geom_filter_function": apply_filter,
                "_validate_geom_fields": validate_fields,
                "parse_geom": partial(normalizer.parse_geom, service),
                "_get_properties_from_feature_collection": actions.get_properties_from_feature_collection,
            },
            hooks={
                "before": {
                    **{name: [apply_filter] for name in FILTER_HOOK_ACTIONS},
                    **{name: [validate_fields] for name in VALIDATION_HOOK_ACTIONS},
                }
            },
            started=started,
        )

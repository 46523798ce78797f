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
GeoJSON document helpers.

Pure, synchronous operations over in-memory GeoJSON mappings: feature and
geometry extraction, structural validation and normalisation into a
FeatureCollection. Nothing here touches the database.
"""

import copy
import logging
import math
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel
from shapely.errors import ShapelyError
from shapely.geometry import shape

logger = logging.getLogger(__name__)

# ============================================================================
# ENUMS & MODELS
# ============================================================================

class GeometryType(str, Enum):
    POINT = "Point"
    MULTI_POINT = "MultiPoint"
    LINE_STRING = "LineString"
    MULTI_LINE_STRING = "MultiLineString"
    POLYGON = "Polygon"
    MULTI_POLYGON = "MultiPolygon"
    GEOMETRY_COLLECTION = "GeometryCollection"


class GeoJSONError(str, Enum):
    INVALID_OBJECT = "Invalid GeoJSON object"
    INVALID_TYPE = "Invalid GeoJSON type"
    EMPTY_COLLECTION = "Feature collection has no features"
    INVALID_FEATURE = "Invalid feature"
    MISSING_GEOMETRY = "Feature has no geometry"
    INVALID_COORDINATES = "Invalid coordinates"
    INVALID_GEOMETRY = "Invalid geometry"


class ValidationResult(BaseModel):
    """Result of a document validation."""
    valid: bool
    error: Optional[str] = None


FEATURE = "Feature"
FEATURE_COLLECTION = "FeatureCollection"
GEOMETRY_TYPES = {t.value for t in GeometryType}

# ============================================================================
# EXTRACTION
# ============================================================================

def _type_of(doc: Any) -> Optional[str]:
    return doc.get("type") if isinstance(doc, dict) else None


def _as_feature(geometry: Dict[str, Any], properties: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {"type": FEATURE, "geometry": geometry, "properties": properties}


def get_features(doc: Any) -> List[Dict[str, Any]]:
    """Returns the features of a collection, a feature as a list, or a geometry wrapped as one feature."""
    doc_type = _type_of(doc)
    if doc_type == FEATURE_COLLECTION:
        features = doc.get("features")
        return [f for f in features if isinstance(f, dict)] if isinstance(features, list) else []
    if doc_type == FEATURE:
        return [doc]
    if doc_type in GEOMETRY_TYPES:
        return [_as_feature(doc)]
    return []


def get_geometries(doc: Any) -> List[Dict[str, Any]]:
    """
    Returns every non-null geometry of the document.

    A `crs` member declared on the collection or on a feature is copied onto
    the geometries below it that do not declare their own.
    """
    doc_type = _type_of(doc)
    if doc_type in GEOMETRY_TYPES:
        return [doc]

    inherited_crs = doc.get("crs") if doc_type == FEATURE_COLLECTION else None
    geometries = []
    for feature in get_features(doc):
        geometry = feature.get("geometry")
        if not isinstance(geometry, dict):
            continue
        crs = feature.get("crs") or inherited_crs
        if crs and "crs" not in geometry:
            geometry = {**geometry, "crs": crs}
        geometries.append(geometry)
    return geometries

# ============================================================================
# VALIDATION
# ============================================================================

def _is_position(value: Any) -> bool:
    if not isinstance(value, (list, tuple)) or len(value) < 2:
        return False
    return all(
        isinstance(c, (int, float)) and not isinstance(c, bool) and math.isfinite(c)
        for c in value
    )


def _are_positions(value: Any, min_length: int = 0) -> bool:
    return (
        isinstance(value, (list, tuple))
        and len(value) >= min_length
        and all(_is_position(p) for p in value)
    )


def _is_linear_ring(value: Any) -> bool:
    return _are_positions(value, 4) and list(value[0]) == list(value[-1])


def _is_polygon(value: Any) -> bool:
    return isinstance(value, (list, tuple)) and len(value) > 0 and all(_is_linear_ring(r) for r in value)


_COORDINATE_CHECKS = {
    GeometryType.POINT.value: _is_position,
    GeometryType.MULTI_POINT.value: lambda c: _are_positions(c),
    GeometryType.LINE_STRING.value: lambda c: _are_positions(c, 2),
    GeometryType.MULTI_LINE_STRING.value: lambda c: isinstance(c, (list, tuple)) and all(_are_positions(l, 2) for l in c),
    GeometryType.POLYGON.value: _is_polygon,
    GeometryType.MULTI_POLYGON.value: lambda c: isinstance(c, (list, tuple)) and all(_is_polygon(p) for p in c),
}


def _validate_geometry(geometry: Any) -> Optional[str]:
    geometry_type = _type_of(geometry)
    if geometry_type not in GEOMETRY_TYPES:
        return GeoJSONError.INVALID_TYPE.value

    if geometry_type == GeometryType.GEOMETRY_COLLECTION.value:
        members = geometry.get("geometries")
        if not isinstance(members, list):
            return GeoJSONError.INVALID_GEOMETRY.value
        for member in members:
            error = _validate_geometry(member)
            if error:
                return error
    elif not _COORDINATE_CHECKS[geometry_type](geometry.get("coordinates")):
        return GeoJSONError.INVALID_COORDINATES.value

    try:
        shape(geometry)
    except (ShapelyError, ValueError, TypeError) as e:
        logger.debug(f"Shapely rejected {geometry_type}: {e}")
        return GeoJSONError.INVALID_GEOMETRY.value
    return None


def _validate_feature(feature: Any) -> Optional[str]:
    if _type_of(feature) != FEATURE:
        return GeoJSONError.INVALID_FEATURE.value
    properties = feature.get("properties")
    if properties is not None and not isinstance(properties, dict):
        return GeoJSONError.INVALID_FEATURE.value
    if feature.get("geometry") is None:
        return GeoJSONError.MISSING_GEOMETRY.value
    return _validate_geometry(feature["geometry"])


def validate(doc: Any) -> ValidationResult:
    """Structurally validates a FeatureCollection, Feature or bare geometry."""
    doc_type = _type_of(doc)
    if doc_type is None:
        return ValidationResult(valid=False, error=GeoJSONError.INVALID_OBJECT.value)

    if doc_type == FEATURE_COLLECTION:
        features = doc.get("features")
        if not isinstance(features, list):
            return ValidationResult(valid=False, error=GeoJSONError.INVALID_FEATURE.value)
        if not features:
            return ValidationResult(valid=False, error=GeoJSONError.EMPTY_COLLECTION.value)
        errors = (_validate_feature(f) for f in features)
    elif doc_type == FEATURE:
        errors = iter([_validate_feature(doc)])
    else:
        errors = iter([_validate_geometry(doc)])

    error = next((e for e in errors if e), None)
    return ValidationResult(valid=error is None, error=error)


def _disallowed_type(geometry: Dict[str, Any], allowed: set) -> Optional[str]:
    kind = geometry.get("type")
    if kind in allowed:
        return None
    if kind != GeometryType.GEOMETRY_COLLECTION.value:
        return kind
    # A collection is accepted when all of its members are.
    for member in geometry.get("geometries") or []:
        found = _disallowed_type(member, allowed) if isinstance(member, dict) else None
        if found:
            return found
    return None


def validate_geometry_types(types: Iterable[Any], doc: Any) -> ValidationResult:
    """Checks that every geometry in `doc` is one of the allowed `types`."""
    allowed = {getattr(t, "value", t) for t in types}
    for geometry in get_geometries(doc):
        kind = _disallowed_type(geometry, allowed)
        if kind:
            return ValidationResult(valid=False, error=f"Geometry type '{kind}' is not allowed")
    return ValidationResult(valid=True)

# ============================================================================
# PARSING
# ============================================================================

def parse(doc: Any, properties: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Normalises a geometry, feature or collection into a FeatureCollection.

    A geometry may carry a sibling `properties` member (as produced when a
    projected row is merged with its selected columns); it becomes the
    properties of the resulting feature. A GeometryCollection is split into
    one feature per member geometry.
    """
    doc_type = _type_of(doc)
    if doc_type == FEATURE_COLLECTION:
        return doc
    if doc_type == FEATURE:
        return {"type": FEATURE_COLLECTION, "features": [doc]}
    if doc_type not in GEOMETRY_TYPES:
        raise ValueError(f"Cannot parse GeoJSON of type '{doc_type}'")

    geometry = copy.deepcopy(doc)
    properties = geometry.pop("properties", properties)
    if doc_type == GeometryType.GEOMETRY_COLLECTION.value:
        features = [_as_feature(member, properties) for member in geometry.get("geometries", [])]
    else:
        features = [_as_feature(geometry, properties)]
    return {"type": FEATURE_COLLECTION, "features": features}

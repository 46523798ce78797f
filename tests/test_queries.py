import pytest

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

CRS = {"type": "name", "properties": {"name": "EPSG:4326"}}


def test_transform_without_srid_is_identity():
    assert transform('"boundary"') == '"boundary"'
    assert transform('"boundary"', None) == '"boundary"'
    assert transform('"boundary"', 0) == '"boundary"'


def test_transform_wraps_once():
    wrapped = transform('"boundary"', 3346)
    assert wrapped == 'ST_Transform("boundary", 3346)'
    assert transform(wrapped) == wrapped


def test_transform_defaults_to_geom_column():
    assert transform(None, 4326) == f"ST_Transform({DEFAULT_FIELD}, 4326)"
    assert transform("", 4326) == 'ST_Transform("geom", 4326)'


def test_area_query():
    assert area_query('"boundary"') == 'ROUND(ST_Area("boundary")) as area'
    assert area_query('"boundary"', "size", 3346) == 'ROUND(ST_Area(ST_Transform("boundary", 3346))) as size'


def test_distance_query_transforms_both_operands():
    sql = distance_query('"a"', '"b"', srid=3346)
    assert sql == 'ROUND(ST_Distance(ST_Transform("a", 3346), ST_Transform("b", 3346))) as distance'


def test_as_geojson_query_options():
    assert as_geojson_query('"boundary"') == 'ST_AsGeoJSON("boundary")::json as "boundary"'
    sql = as_geojson_query('"boundary"', "geom", 3346, {"digits": 0, "options": 0})
    assert sql == 'ST_AsGeoJSON(ST_Transform("boundary", 3346), 0, 0)::json as geom'


def test_as_geojson_query_ignores_partial_options():
    sql = as_geojson_query('"boundary"', "geom", opts={"digits": 2})
    assert sql == 'ST_AsGeoJSON("boundary")::json as geom'
    sql = as_geojson_query('"boundary"', "geom", opts={"digits": "2", "options": 0})
    assert sql == 'ST_AsGeoJSON("boundary")::json as geom'


def test_geometries_as_text_single(point):
    sql = geometries_as_text_query(point, 3346)
    assert sql == (
        "ST_AsText(ST_GeomFromGeoJSON('{\"type\":\"Point\",\"coordinates\":[500050,6000050]}'))"
    )


def test_geometries_as_text_single_element_list_is_single(point):
    assert geometries_as_text_query([point]) == geometries_as_text_query(point)


def test_geometries_as_text_single_with_crs_is_transformed(point):
    sql = geometries_as_text_query({**point, "crs": CRS}, 3346)
    assert sql.startswith("ST_AsText(ST_Transform(ST_GeomFromGeoJSON(")
    assert sql.endswith(", 3346))")


def test_geometries_as_text_multiple(point, polygon):
    sql = geometries_as_text_query([point, polygon], 3346)
    assert sql.startswith("ST_AsText(ST_Collect(ARRAY(SELECT ST_GeomFromGeoJSON(JSON_ARRAY_ELEMENTS('[")
    assert "ST_Transform" not in sql


def test_geometries_as_text_multiple_transform_requires_every_crs(point, polygon):
    partial = geometries_as_text_query([{**point, "crs": CRS}, polygon], 3346)
    assert "ST_Transform" not in partial

    full = geometries_as_text_query([{**point, "crs": CRS}, {**polygon, "crs": CRS}], 3346)
    assert "ST_Collect(ARRAY(SELECT ST_Transform(ST_GeomFromGeoJSON(JSON_ARRAY_ELEMENTS(" in full


def test_geometries_as_text_escapes_single_quotes():
    sql = geometries_as_text_query({"type": "Point", "coordinates": [1, 2], "crs": "x'); DROP TABLE t; --"})
    literal = sql[len("ST_AsText(ST_GeomFromGeoJSON("):-len("))")]
    assert literal.startswith("'") and literal.endswith("'")
    # Every quote inside the literal is doubled.
    assert "'" not in literal[1:-1].replace("''", "")


def test_geom_from_text():
    assert geom_from_text("'POINT(1 2)'") == "ST_GeomFromText('POINT(1 2)')"
    assert geom_from_text("'POINT(1 2)'", 3346) == "ST_GeomFromText('POINT(1 2)', 3346)"


@pytest.mark.parametrize("doc", [
    None,
    {},
    "not json",
    {"type": "FeatureCollection", "features": []},
    {"type": "Feature", "geometry": None, "properties": {}},
])
@pytest.mark.parametrize("srid", [None, 3346])
def test_intersects_query_without_geometries(doc, srid):
    assert intersects_query('"boundary"', doc, srid) is None


def test_intersects_query(single_polygon_collection):
    sql = intersects_query('"boundary"', single_polygon_collection, 3346)
    assert sql.startswith('ST_intersects(ST_Transform("boundary", 3346), ST_GeomFromText(ST_AsText(ST_GeomFromGeoJSON(')
    assert sql.endswith(")), 3346))")


def test_intersects_query_without_srid(point):
    sql = intersects_query('"boundary"', point)
    assert sql.startswith('ST_intersects("boundary", ST_GeomFromText(ST_AsText(')
    assert "3346" not in sql

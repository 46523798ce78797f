import pytest
from unittest.mock import AsyncMock

from postgis_mixin import PostgisMixin, PostgisMixinSettings, service as service_module
from postgis_mixin.exceptions import FieldValidationError
from postgis_mixin.models import Context, FieldDefinition, ServiceSettings
from postgis_mixin.service import RecordService

from conftest import make_collection


def _service(mixin=None) -> RecordService:
    settings = ServiceSettings(
        table="parcels",
        storage_srid=3346,
        fields={
            "id": FieldDefinition(type="number"),
            "name": FieldDefinition(type="string"),
            "boundary": FieldDefinition(geom={"type": "geom", "multi": False}),
            "area": FieldDefinition(geom={"type": "area", "field": "boundary"}),
        },
    )
    return RecordService("parcels", settings, db_resource=object(), mixins=[mixin or PostgisMixin()])


def test_default_srid(monkeypatch):
    monkeypatch.delenv("POSTGIS_MIXIN_SRID", raising=False)
    assert PostgisMixin().srid == 3346


def test_given_srid_wins():
    assert PostgisMixin(PostgisMixinSettings(srid=4326)).srid == 4326


def test_schema_surface():
    service = _service()
    assert set(service.actions) == {"_get_feature_collection_from_geom", "_get_geometry_area"}
    for method in ("_apply_geom_filter_function", "_validate_geom_fields", "parse_geom",
                   "_get_properties_from_feature_collection"):
        assert callable(getattr(service, method))
    for action in ("list", "find"):
        assert service.hooks["before"][action] == [service._apply_geom_filter_function]
    for action in ("create", "update", "replace"):
        assert service.hooks["before"][action] == [service._validate_geom_fields]


@pytest.mark.asyncio
async def test_started_binds_fields():
    service = _service()
    assert service.settings.fields["boundary"].populate is None

    await service.started()

    assert service.settings.fields["boundary"].populate.action == "parcels._get_feature_collection_from_geom"
    assert service.settings.fields["area"].populate.action == "parcels._get_geometry_area"
    assert service.settings.fields["name"].populate is None


@pytest.mark.asyncio
async def test_call_dispatches_actions_with_srid(monkeypatch):
    area = AsyncMock(return_value={"1": 5.0})
    monkeypatch.setattr("postgis_mixin.actions.get_geometry_area", area)
    service = _service(PostgisMixin(PostgisMixinSettings(srid=4326)))

    ctx = Context(params={"id": [1], "field": "boundary"})
    assert await service.call("parcels._get_geometry_area", ctx) == {"1": 5.0}
    area.assert_awaited_once_with(service, ctx, srid=4326)


@pytest.mark.asyncio
async def test_call_rejects_other_services():
    with pytest.raises(ValueError):
        await _service().call("roads._get_geometry_area", Context())


@pytest.mark.asyncio
async def test_create_rejects_second_feature(monkeypatch, two_polygon_collection):
    insert = AsyncMock()
    monkeypatch.setattr(service_module._insert_query, "execute", insert)
    service = _service()
    await service.started()

    with pytest.raises(FieldValidationError) as exc:
        await service.create(Context(params={"name": "a", "boundary": two_polygon_collection}))

    assert exc.value.field == "boundary"
    assert exc.value.message == "Feature collection accepts only one feature"
    insert.assert_not_awaited()


@pytest.mark.asyncio
async def test_find_applies_raw_geometry_filter(monkeypatch, point):
    select = AsyncMock(return_value=[{"id": 1, "name": "a"}])
    monkeypatch.setattr(service_module._select_query, "execute", select)
    service = _service()
    await service.started()

    rows = await service.find(Context(params={"query": {"boundary": make_collection(point), "name": "a"}}))

    assert rows == [{"id": 1, "name": "a"}]
    kwargs = select.await_args.kwargs
    assert kwargs["conditions"][0].startswith("(ST_intersects(")
    assert kwargs["conditions"][1] == '"name" = :q_1'
    assert kwargs["binds"] == {"q_1": "a"}
    # Geometry columns are read through populate, never selected raw.
    assert '"boundary" as "boundary"' not in kwargs["columns"]

    query, _ = service_module._select_query.build(None, **kwargs)
    assert "ST_GeomFromGeoJSON('{\"type\":\"Point\"" in str(query)


@pytest.mark.asyncio
async def test_find_without_geometries_has_no_constraint(monkeypatch):
    select = AsyncMock(return_value=[])
    monkeypatch.setattr(service_module._select_query, "execute", select)
    service = _service()
    await service.started()

    await service.find(Context(params={"query": {"boundary": {"type": "FeatureCollection", "features": []}}}))
    assert select.await_args.kwargs["conditions"] == []


@pytest.mark.asyncio
async def test_get_populates_through_actions(monkeypatch, polygon):
    select = AsyncMock(return_value=[{"id": 1, "name": "a"}, {"id": 2, "name": "b"}])
    monkeypatch.setattr(service_module._select_query, "execute", select)
    area = AsyncMock(return_value={"1": 10000.0, "2": 25.5})
    monkeypatch.setattr("postgis_mixin.actions.get_geometry_area", area)
    service = _service()
    await service.started()

    rows = await service.get(Context(params={"id": [1, 2], "populate": ["area"]}))

    assert [row["area"] for row in rows] == [10000.0, 25.5]
    populate_ctx = area.await_args.args[1]
    assert populate_ctx.params == {"field": "boundary", "as_field": "area", "id": [1, 2]}


@pytest.mark.asyncio
async def test_find_ignores_raw_sql_on_plain_fields(monkeypatch):
    select = AsyncMock(return_value=[])
    monkeypatch.setattr(service_module._select_query, "execute", select)
    service = _service()
    await service.started()

    await service.find(Context(params={"query": {
        "name": {"$raw": "1=1) OR (pg_sleep(5) IS NULL"},
        "unknown": {"$raw": "TRUE"},
    }}))

    assert select.await_args.kwargs["conditions"] == []
    assert select.await_args.kwargs["binds"] == {}


@pytest.mark.asyncio
async def test_find_replaces_caller_raw_sql_on_geometry_fields(monkeypatch):
    select = AsyncMock(return_value=[])
    monkeypatch.setattr(service_module._select_query, "execute", select)
    service = _service()
    await service.started()

    await service.find(Context(params={"query": {"boundary": {"$raw": "1=1) OR (TRUE"}}}))

    assert select.await_args.kwargs["conditions"] == []


def test_raw_sql_requires_a_geometry_filter_function():
    service = _service(PostgisMixin())
    # Not started: no field has a filter function bound yet.
    conditions, binds = service._query_conditions({"boundary": {"$raw": "TRUE"}})
    assert conditions == [] and binds == {}


@pytest.mark.asyncio
@pytest.mark.parametrize("page", [0, -3, None])
async def test_list_clamps_page(monkeypatch, page):
    select = AsyncMock(return_value=[])
    monkeypatch.setattr(service_module._select_query, "execute", select)
    monkeypatch.setattr(service_module._count_query, "execute", AsyncMock(return_value=0))
    service = _service()
    await service.started()

    listed = await service.list(Context(params={"page": page, "page_size": -5}))

    assert listed["page"] == 1
    assert listed["page_size"] == 1
    kwargs = select.await_args.kwargs
    assert kwargs["offset"] == 0
    query, binds = service_module._select_query.build(None, **kwargs)
    assert "OFFSET" not in str(query)
    assert binds == {"limit": 1}


def test_select_builder_skips_negative_offset():
    query, binds = service_module._select_query.build(
        None, table='"parcels"', columns=["1"], conditions=[], binds={}, limit=None, offset=-10
    )
    assert "OFFSET" not in str(query)
    assert binds == {}

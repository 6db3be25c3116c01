import asyncio

from models import DealField, FieldOption, OwnerInfo
from pipedrive_fakes import COUNTRY_KEY, MAPACHE_KEY, FakePipedrive
from reference_data import FieldOptions


def _fake() -> FakePipedrive:
    fake = FakePipedrive()
    fake.deal_fields = [
        {"id": 1, "key": "title", "name": "Title", "field_type": "varchar"},
        {
            "id": 2,
            "key": MAPACHE_KEY,
            "name": "Mapache asignado",
            "field_type": "enum",
            "options": [
                {"id": 11, "label": "José Pérez"},
                {"id": 12, "label": "Federico Inigo"},
                {"id": "bad", "label": "Broken option"},
            ],
        },
        {"id": 3, "key": COUNTRY_KEY, "field_type": "enum", "options": [{"id": 265, "label": "Argentina"}]},
    ]
    fake.stages = [{"id": 1, "name": "Discovery"}, {"id": 2, "name": "Qualified"}]
    fake.users = {
        10: {"id": 10, "name": "Ana Owner", "email": "ana@example.com"},
        20: {"id": 20, "name": "Bruno Owner", "email": "bruno@example.com"},
    }
    return fake


def test_field_options_are_fetched_once() -> None:
    fake = _fake()
    service = fake.service()

    async def run():
        first = await service.ensure_mapache_field_options()
        second = await service.ensure_mapache_field_options()
        await service.cache.find_option_id("jose perez")
        return first, second

    first, second = asyncio.run(run())

    assert first is second
    assert len(fake.calls("GET", "/api/v1/dealFields")) == 1


def test_field_option_maps_are_consistent() -> None:
    options = asyncio.run(_fake().service().ensure_mapache_field_options())

    assert options.option_by_id == {"11": "José Pérez", "12": "Federico Inigo"}
    for name, option_id in options.option_id_by_name.items():
        assert str(option_id) in options.option_by_id
    assert len(options.option_id_by_name) == len(options.option_by_id)


def test_name_lookup_ignores_accents_case_and_padding() -> None:
    service = _fake().service()

    async def run():
        return [await service.cache.find_option_id(n) for n in ("José Pérez", "jose perez", "JOSÉ PÉREZ ", "Federico Iñigo")]

    assert asyncio.run(run()) == [11, 11, 11, 12]


def test_unknown_name_resolves_to_none() -> None:
    assert asyncio.run(_fake().service().cache.find_option_id("Nobody")) is None


def test_secondary_picklists_come_from_same_snapshot() -> None:
    service = _fake().service()
    asyncio.run(service.ensure_mapache_field_options())

    assert service.cache.picklist(COUNTRY_KEY).label_for(265) == "Argentina"
    assert service.cache.picklist("origin-field") is None


def test_stage_names_are_fetched_once() -> None:
    fake = _fake()
    service = fake.service()

    async def run():
        await service.ensure_stage_name_map()
        return await service.ensure_stage_name_map()

    assert asyncio.run(run()) == {1: "Discovery", 2: "Qualified"}
    assert len(fake.calls("GET", "/api/v1/stages")) == 1


def test_invalidate_forces_a_refetch() -> None:
    fake = _fake()
    service = fake.service()

    asyncio.run(service.ensure_stage_name_map())
    service.cache.invalidate()
    asyncio.run(service.ensure_stage_name_map())

    assert len(fake.calls("GET", "/api/v1/stages")) == 2


def test_owner_failures_are_cached_as_none_and_do_not_block_others() -> None:
    fake = _fake()
    service = fake.service()

    owners = asyncio.run(service.resolve_owner_infos([10, 99, 20, 10]))

    assert owners == {
        10: OwnerInfo(name="Ana Owner", email="ana@example.com"),
        99: None,
        20: OwnerInfo(name="Bruno Owner", email="bruno@example.com"),
    }
    assert len(fake.calls("GET", r"/api/v1/users/\d+")) == 3


def test_owner_lookups_are_memoized() -> None:
    fake = _fake()
    service = fake.service()

    asyncio.run(service.resolve_owner_infos([10, 99]))
    again = asyncio.run(service.resolve_owner_infos([99, 10, 20]))

    assert again[99] is None
    assert again[20].email == "bruno@example.com"
    fetched = [r.url.path for r in fake.calls("GET", r"/api/v1/users/\d+")]
    assert sorted(fetched) == ["/api/v1/users/10", "/api/v1/users/20", "/api/v1/users/99"]


def test_labels_that_normalize_alike_keep_the_first_option_for_lookup() -> None:
    deal_field = DealField(key=MAPACHE_KEY, options=[
        FieldOption(id=1, label="José"),
        FieldOption(id=2, label="jose"),
        FieldOption(id=3, label="Ana"),
    ])

    options = FieldOptions.from_field(deal_field)

    assert options.option_by_id == {"1": "José", "2": "jose", "3": "Ana"}
    assert options.option_id_by_name == {"jose": 1, "ana": 3}
    assert options.find_id("JOSE") == 1
    assert options.label_for(2) == "jose"

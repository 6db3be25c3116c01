import asyncio

import pytest

from pipedrive_client import PipedriveConfigError, PipedriveError
from pipedrive_fakes import MAPACHE_KEY, FakePipedrive


def test_one_shot_and_url_are_written_together() -> None:
    fake = FakePipedrive()

    result = asyncio.run(fake.service().update_one_shot_and_url(77, one_shot=99, proposal_url="https://x.test/p.pdf"))

    assert result == {"skipped": False}
    assert fake.updates == [{"deal_id": 77, "oneshot-field": 99, "proposal-field": "https://x.test/p.pdf"}]


def test_empty_update_is_skipped_without_a_call() -> None:
    fake = FakePipedrive()

    result = asyncio.run(fake.service().update_one_shot_and_url(77, one_shot=None, proposal_url=""))

    assert result == {"skipped": True}
    assert fake.requests == []


def test_non_finite_one_shot_is_ignored() -> None:
    fake = FakePipedrive()

    result = asyncio.run(fake.service().update_one_shot_and_url(77, one_shot=float("nan")))

    assert result == {"skipped": True}


def test_missing_field_key_raises_config_error() -> None:
    fake = FakePipedrive()
    service = fake.service(field_one_shot="")

    with pytest.raises(PipedriveConfigError, match="PIPEDRIVE_FIELD_ONE_SHOT"):
        asyncio.run(service.update_one_shot_and_url(77, one_shot=10))
    assert fake.requests == []


def test_tech_sale_scope_update() -> None:
    fake = FakePipedrive()

    asyncio.run(fake.service().update_tech_sale_scope(8, "https://scope.test/doc"))

    assert fake.updates == [{"deal_id": 8, "scope-field": "https://scope.test/doc"}]


def test_assign_writes_resolved_option_id() -> None:
    fake = FakePipedrive()
    fake.deal_fields = [{"key": MAPACHE_KEY, "options": [{"id": 31, "label": "Martín Ruiz"}]}]

    option_id = asyncio.run(fake.service().assign_deal_to_mapache(15, "martin ruiz"))

    assert option_id == 31
    assert fake.updates == [{"deal_id": 15, MAPACHE_KEY: 31}]


def test_assign_unknown_name_fails_before_writing() -> None:
    fake = FakePipedrive()
    fake.deal_fields = [{"key": MAPACHE_KEY, "options": [{"id": 31, "label": "Martín Ruiz"}]}]

    with pytest.raises(PipedriveError, match="not a valid option"):
        asyncio.run(fake.service().assign_deal_to_mapache(15, "Someone Else"))
    assert fake.updates == []

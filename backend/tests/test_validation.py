from datetime import datetime, timezone

import pytest

from kafka_governance.core.errors import InvalidFormat, MissingField
from kafka_governance.db.models import OffsetResetType, RequestStatus, RequestType
from kafka_governance.services.validation import RequestValidator


@pytest.fixture
def validator(db):
    return RequestValidator(db)


def test_target_ownership_with_team_acl(validator):
    env = validator.validate_target_ownership('DEV', 'orders', 'g1', 101, 1)
    assert env is not None
    assert env.id == 'DEV'
    assert env.name == 'DEV'


@pytest.mark.parametrize(
    'environment, topic, group, team_id',
    [
        ('DEV', 'orders', 'other-group', 101),
        ('DEV', 'orders', 'g1', 102),
        ('TST', 'payments', 'payments-app', 101),
        ('PRD', 'orders', 'g1', 101),
    ],
)
def test_target_ownership_without_matching_acl(validator, environment, topic, group, team_id):
    assert validator.validate_target_ownership(environment, topic, group, team_id, 1) is None


@pytest.mark.parametrize('group', [None, '', '   '])
def test_target_ownership_short_circuits_on_empty_group(validator, group, monkeypatch):
    calls = []
    monkeypatch.setattr(validator.store, 'find_approved_acls', lambda **kw: calls.append(kw) or [])

    assert validator.validate_target_ownership('DEV', 'orders', group, 101, 1) is None
    assert calls == []


def test_reset_timestamp_not_needed_for_earliest(validator):
    assert validator.validate_reset_timestamp(OffsetResetType.EARLIEST, None) is None
    assert validator.validate_reset_timestamp(OffsetResetType.LATEST, 'garbage') is None


@pytest.mark.parametrize('value', [None, '', '  '])
def test_reset_timestamp_missing(validator, value):
    with pytest.raises(MissingField):
        validator.validate_reset_timestamp(OffsetResetType.TO_DATE_TIME, value)


@pytest.mark.parametrize(
    'value',
    ['2024-01-01', '2024-01-01T00:00:00+0000', '2024-13-01T00:00:00.000+0000', 'yesterday'],
)
def test_reset_timestamp_invalid_format(validator, value):
    with pytest.raises(InvalidFormat):
        validator.validate_reset_timestamp(OffsetResetType.TO_DATE_TIME, value)


def test_reset_timestamp_parsed_to_utc(validator):
    parsed = validator.validate_reset_timestamp(OffsetResetType.TO_DATE_TIME, '2024-01-01T02:00:00.000+0200')
    assert parsed == datetime(2024, 1, 1, 0, 0, tzinfo=timezone.utc)


def test_connect_environment(validator):
    assert validator.validate_connect_environment('DEV_CONNECT', 1).name == 'DEV-CONNECT'
    assert validator.validate_connect_environment('DEV', 1) is None
    assert validator.validate_connect_environment('DEV_CONNECT', 2) is None


@pytest.mark.parametrize(
    'name, description, config, error',
    [
        (None, 'demo connector', '{}', MissingField),
        ('ab', 'demo connector', '{}', InvalidFormat),
        ('bad name!', 'demo connector', '{}', InvalidFormat),
        ('file-source', '', '{}', MissingField),
        ('file-source', 'demo <script>', '{}', InvalidFormat),
        ('file-source', 'demo connector', '', MissingField),
        ('file-source', 'demo connector', '{not json', InvalidFormat),
        ('file-source', 'demo connector', '[1, 2]', InvalidFormat),
    ],
)
def test_connector_fields_rejected(validator, name, description, config, error):
    with pytest.raises(error):
        validator.validate_connector_fields(name, description, config)


def test_connector_fields_accepted(validator):
    config = validator.validate_connector_fields('file-source', 'demo connector', '{"tasks.max": "1"}')
    assert config == {'tasks.max': '1'}


def test_check_duplicate_only_matches_pending(validator, make_request):
    kwargs = dict(
        requestor='alice',
        request_type=RequestType.RESET_CONSUMER_OFFSETS,
        environment='DEV',
        topicname='orders',
        consumer_group='g1',
        tenant_id=1,
    )
    assert validator.check_duplicate(**kwargs) is False

    make_request(status=RequestStatus.APPROVED)
    assert validator.check_duplicate(**kwargs) is False

    make_request()
    assert validator.check_duplicate(**kwargs) is True
    assert validator.check_duplicate(**{**kwargs, 'requestor': 'bob'}) is False
    assert validator.check_duplicate(**{**kwargs, 'consumer_group': 'g2'}) is False

import pytest

from kafka_governance.core.errors import DuplicateRequest
from kafka_governance.db.models import KafkaRequest, RequestStatus, RequestType, build_dedup_key
from kafka_governance.services.store import RequestStore


@pytest.fixture
def store(db):
    return RequestStore(db)


def _offset_request(requestor='alice', group='g1'):
    return KafkaRequest(
        tenant_id=1,
        request_type=RequestType.RESET_CONSUMER_OFFSETS.value,
        request_status=RequestStatus.CREATED.value,
        requestor=requestor,
        requesting_team_id=101,
        environment='DEV',
        topicname='orders',
        consumer_group=group,
        offset_reset_type='LATEST',
        dedup_key=build_dedup_key(RequestType.RESET_CONSUMER_OFFSETS.value, 'DEV', 'orders', group),
    )


def test_insert_assigns_id(store):
    result = store.insert(_offset_request())

    assert result.is_success
    assert result.result == 'success'
    assert result.request_id is not None
    assert store.find_by_id(result.request_id, 1).requestor == 'alice'


def test_insert_pending_twin_raises_duplicate(store):
    # Skips the pre-insert check on purpose, as two racing creators would.
    store.insert(_offset_request())

    with pytest.raises(DuplicateRequest):
        store.insert(_offset_request())

    # The savepoint rollback leaves the outer transaction usable.
    assert len(store.query(tenant_id=1)) == 1


def test_insert_allows_new_pending_after_decision(store):
    first = store.insert(_offset_request())
    store.update_status(first.request_id, RequestStatus.DECLINED, 'bob', tenant_id=1)

    assert store.insert(_offset_request()).is_success


def test_find_by_id_is_tenant_scoped(store, make_request):
    req = make_request()
    assert store.find_by_id(req.id, 1) is req
    assert store.find_by_id(req.id, 2) is None
    assert store.find_by_id(9999, 1) is None


def test_query_filters(store, make_request):
    a = make_request('alice', topicname='orders', consumer_group='g1')
    b = make_request('alice', environment='TST', topicname='orders', consumer_group='g1', status=RequestStatus.APPROVED)
    c = make_request('bob', topicname='payments', consumer_group='payments-app')
    d = make_request(
        'alice',
        environment='DEV_CONNECT',
        topicname=None,
        consumer_group=None,
        request_type=RequestType.CREATE_CONNECTOR,
        connector_name='orders-sink',
    )
    make_request('alice', tenant_id=2)

    assert [r.id for r in store.query(tenant_id=1)] == [a.id, b.id, c.id, d.id]
    assert [r.id for r in store.query(tenant_id=1, requestor='alice', mine_only=True)] == [a.id, b.id, d.id]
    assert [r.id for r in store.query(tenant_id=1, requestor='alice')] == [a.id, b.id, d.id]
    assert [r.id for r in store.query(tenant_id=1, requestor='bob')] == [c.id]
    assert [r.id for r in store.query(tenant_id=1, status=RequestStatus.APPROVED)] == [b.id]
    assert len(store.query(tenant_id=1, status='ALL')) == 4
    assert [r.id for r in store.query(tenant_id=1, environment='TST')] == [b.id]
    assert [r.id for r in store.query(tenant_id=1, consumer_group='payments-app')] == [c.id]
    assert [r.id for r in store.query(tenant_id=1, request_type=RequestType.CREATE_CONNECTOR)] == [d.id]
    assert [r.id for r in store.query(tenant_id=1, wildcard='ORDER')] == [a.id, b.id, d.id]
    assert [r.id for r in store.query(tenant_id=1, connector_name='orders-sink')] == [d.id]


def test_query_mine_only_needs_a_requestor(store):
    with pytest.raises(ValueError):
        store.query(tenant_id=1, mine_only=True)


def test_update_status_is_conditional(store, make_request, db):
    req = make_request()

    first = store.update_status(req.id, RequestStatus.APPROVED, 'bob', tenant_id=1)
    second = store.update_status(req.id, RequestStatus.DECLINED, 'carol', tenant_id=1, reason='late')
    db.refresh(req)

    assert first.is_success
    assert not second.is_success
    assert req.request_status == 'APPROVED'
    assert req.approver == 'bob'
    assert req.approving_time is not None
    assert req.decline_reason is None


def test_update_status_other_tenant_is_noop(store, make_request):
    req = make_request()
    assert not store.update_status(req.id, RequestStatus.APPROVED, 'bob', tenant_id=2).is_success
    assert req.request_status == 'CREATED'


def test_count_by_status_and_type(store, make_request):
    make_request('alice')
    make_request('alice', status=RequestStatus.APPROVED)
    make_request('bob', status=RequestStatus.APPROVED)

    counts = {(t, s): n for t, s, n in store.count_by_status_and_type(1)}
    assert counts == {
        ('RESET_CONSUMER_OFFSETS', 'CREATED'): 1,
        ('RESET_CONSUMER_OFFSETS', 'APPROVED'): 2,
    }
    mine = store.count_by_status_and_type(1, requestor='bob')
    assert mine == [('RESET_CONSUMER_OFFSETS', 'APPROVED', 1)]

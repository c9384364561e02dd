import pytest
from fastapi.testclient import TestClient

from kafka_governance.db.db import get_db
from kafka_governance.main import app
from kafka_governance.security.deps import get_cluster_api
from kafka_governance.services.cluster_api import ExecutionOutcome, OffsetMeasurements


@pytest.fixture
def client(session_maker, db, cluster_api):
    def _get_db():
        with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_cluster_api] = lambda: cluster_api
    yield TestClient(app)
    app.dependency_overrides.clear()


def _auth(client, username, password='password'):
    response = client.post('/login', json={'username': username, 'password': password})
    assert response.status_code == 200
    return {'Authorization': f"Bearer {response.json()['access_token']}"}


RESET_BODY = {
    'environment': 'DEV',
    'topicname': 'orders',
    'consumer_group': 'g1',
    'offset_reset_type': 'TO_DATE_TIME',
    'reset_timestamp': '2024-01-01T00:00:00.000+0000',
}


def test_login_rejects_bad_password(client):
    response = client.post('/login', json={'username': 'alice', 'password': 'nope'})
    assert response.status_code == 401


def test_repeated_failed_logins_lock_out(client):
    for _ in range(3):
        assert client.post('/login', json={'username': 'carol', 'password': 'wrong'}).status_code == 401

    response = client.post('/login', json={'username': 'carol', 'password': 'password'})

    assert response.status_code == 429
    assert int(response.headers['Retry-After']) >= 1


def test_invalid_token(client):
    response = client.get('/me', headers={'Authorization': 'Bearer not-a-jwt'})
    assert response.status_code == 401
    assert response.json()['detail'] == 'Invalid or expired token'


def test_me(client):
    response = client.get('/me', headers=_auth(client, 'dave'))

    assert response.status_code == 200
    body = response.json()
    assert body['team_name'] == 'Seahorses'
    assert body['environments'] == ['TST']
    assert 'REQUEST_CREATE_SUBSCRIPTIONS' in body['permissions']
    assert response.headers['X-Request-ID']


def test_offset_reset_request_flow(client, cluster_api):
    alice = _auth(client, 'alice')
    bob = _auth(client, 'bob')

    created = client.post('/requests/consumer-offsets', json=RESET_BODY, headers=alice)
    assert created.status_code == 200
    request_id = created.json()['data']['request_id']

    duplicate = client.post('/requests/consumer-offsets', json=RESET_BODY, headers=alice)
    assert duplicate.status_code == 409
    assert duplicate.json()['detail']['code'] == 'DUPLICATE_REQUEST'

    listed = client.get('/requests', params={'mine_only': True}, headers=alice).json()
    assert [item['id'] for item in listed] == [request_id]
    assert listed[0]['editable'] is True
    assert listed[0]['reset_timestamp'] == '2024-01-01T00:00:00.000+0000'

    refused = client.post(f'/requests/{request_id}/approve', headers=alice)
    assert refused.status_code == 403
    assert refused.json()['detail']['code'] == 'NOT_AUTHORIZED'

    cluster_api.outcome = ExecutionOutcome(
        success=True,
        message='success',
        measurements=OffsetMeasurements(before={'orders-0': 7}, after={'orders-0': 0}),
    )
    approved = client.post(f'/requests/{request_id}/approve', headers=bob)
    assert approved.status_code == 200

    listed = client.get('/requests', params={'request_status': 'APPROVED'}, headers=alice).json()
    assert listed[0]['approver'] == 'bob'
    assert listed[0]['editable'] is False

    notes = client.get('/notifications', headers=alice).json()
    assert notes[0]['kind'] == 'RESET_CONSUMER_OFFSET_APPROVED'
    assert 'Before Offset Reset' in notes[0]['body']


def test_validation_failures_map_to_400(client):
    alice = _auth(client, 'alice')

    response = client.post(
        '/requests/consumer-offsets',
        json={**RESET_BODY, 'reset_timestamp': None},
        headers=alice,
    )

    assert response.status_code == 400
    assert response.json()['detail']['code'] == 'MISSING_FIELD'


def test_failed_execution_maps_to_502_and_keeps_request_pending(client, cluster_api):
    alice = _auth(client, 'alice')
    bob = _auth(client, 'bob')
    request_id = client.post('/requests/consumer-offsets', json=RESET_BODY, headers=alice).json()['data']['request_id']
    cluster_api.outcome = ExecutionOutcome(success=False, message='group is active')

    response = client.post(f'/requests/{request_id}/approve', headers=bob)

    assert response.status_code == 502
    listed = client.get('/requests', headers=alice).json()
    assert listed[0]['request_status'] == 'CREATED'


def test_decline_and_delete(client):
    alice = _auth(client, 'alice')
    bob = _auth(client, 'bob')
    first = client.post('/requests/consumer-offsets', json=RESET_BODY, headers=alice).json()['data']['request_id']

    declined = client.post(f'/requests/{first}/decline', json={'reason': 'freeze window'}, headers=bob)
    assert declined.status_code == 200

    second = client.post('/requests/consumer-offsets', json=RESET_BODY, headers=alice).json()['data']['request_id']
    assert client.delete(f'/requests/{second}', headers=bob).status_code == 403
    assert client.delete(f'/requests/{second}', headers=alice).status_code == 200
    assert client.delete(f'/requests/{second}', headers=alice).status_code == 409


def test_connector_request_and_statistics(client):
    alice = _auth(client, 'alice')
    body = {
        'environment': 'DEV_CONNECT',
        'connector_name': 'orders-sink',
        'connector_config': '{"connector.class": "FileStreamSink"}',
        'description': 'Sink orders to file',
    }

    assert client.post('/requests/connectors', json=body, headers=alice).status_code == 200

    stats = client.get('/requests/statistics', headers=alice).json()
    assert stats['data']['request_type_counts'] == {'CREATE_CONNECTOR': 1}
    assert client.get('/requests/statistics', params={'mine_only': False}, headers=alice).status_code == 403

    admin = _auth(client, 'superadmin', 'admin')
    assert client.get('/requests/statistics', params={'mine_only': False}, headers=admin).status_code == 200


def test_healthz(client):
    response = client.get('/healthz')
    assert response.status_code == 200
    assert response.json()['status'] == 'ok'
    assert 'startup_count' in response.json()['runtime']


def test_readyz(client):
    response = client.get('/readyz')

    assert response.status_code == 200
    assert response.json()['checks'] == {'lifecycle': 'ok', 'database': 'ok'}

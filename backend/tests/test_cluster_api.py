import io
import json
import urllib.error
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest

from kafka_governance.core.errors import ClusterApiError
from kafka_governance.services.cluster_api import (
    ClusterApiClient,
    ConnectorParams,
    OffsetMeasurements,
    OffsetResetParams,
    parse_measurements,
)


def _response(payload):
    resp = MagicMock()
    resp.read.return_value = json.dumps(payload).encode('utf-8')
    resp.__enter__.return_value = resp
    return resp


def test_parse_measurements():
    data = {
        'BEFORE_OFFSET_RESET': {'orders-0': 10, 'orders-1': '7'},
        'AFTER_OFFSET_RESET': {'orders-0': 0, 'orders-1': 0},
    }
    assert parse_measurements(data) == OffsetMeasurements(
        before={'orders-0': 10, 'orders-1': 7},
        after={'orders-0': 0, 'orders-1': 0},
    )


@pytest.mark.parametrize('data', [None, [], 'text', {'unrelated': 1}])
def test_parse_measurements_absent(data):
    assert parse_measurements(data) is None


def test_reset_consumer_offsets_posts_and_parses():
    client = ClusterApiClient('http://cluster-api:9343/', timeout_s=5)
    payload = {
        'success': True,
        'message': 'success',
        'data': {'BEFORE_OFFSET_RESET': {'orders-0': 42}, 'AFTER_OFFSET_RESET': {'orders-0': 3}},
    }
    params = OffsetResetParams(
        topicname='orders',
        consumer_group='g1',
        offset_reset_type='TO_DATE_TIME',
        reset_timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )

    with patch('urllib.request.urlopen', return_value=_response(payload)) as mock_urlopen:
        outcome = client.reset_consumer_offsets(params, 'DEV', 1)

    request = mock_urlopen.call_args.args[0]
    assert request.full_url == 'http://cluster-api:9343/topics/consumerGroup/resetOffsets'
    body = json.loads(request.data)
    assert body['consumerGroup'] == 'g1'
    assert body['clusterIdentification'] == 'DEV'
    assert body['resetToDateTimeTimeStamp'] == '2024-01-01T00:00:00.000+0000'
    assert mock_urlopen.call_args.kwargs['timeout'] == 5

    assert outcome.success
    assert outcome.measurements.before == {'orders-0': 42}
    assert outcome.measurements.after == {'orders-0': 3}


def test_execute_connector_request_without_measurements():
    client = ClusterApiClient('http://cluster-api:9343')
    params = ConnectorParams(
        request_type='CREATE_CONNECTOR',
        connector_name='orders-sink',
        connector_config={'tasks.max': '1'},
    )

    with patch('urllib.request.urlopen', return_value=_response({'success': False, 'message': 'exists'})):
        outcome = client.execute_connector_request(params, 'DEV_CONNECT', 1)

    assert not outcome.success
    assert outcome.message == 'exists'
    assert outcome.measurements is None


def test_http_error_becomes_cluster_api_error():
    client = ClusterApiClient('http://cluster-api:9343')
    error = urllib.error.HTTPError('http://cluster-api:9343', 500, 'boom', {}, io.BytesIO(b''))

    with patch('urllib.request.urlopen', side_effect=error):
        with pytest.raises(ClusterApiError) as exc_info:
            client.execute_connector_request(ConnectorParams('CREATE_CONNECTOR', 'c1'), 'DEV_CONNECT', 1)

    assert exc_info.value.status_code == 500


def test_unreachable_becomes_cluster_api_error():
    client = ClusterApiClient('http://cluster-api:9343')

    with patch('urllib.request.urlopen', side_effect=urllib.error.URLError('refused')):
        with pytest.raises(ClusterApiError):
            client.reset_consumer_offsets(OffsetResetParams('orders', 'g1', 'EARLIEST'), 'DEV', 1)

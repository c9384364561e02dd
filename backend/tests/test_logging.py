import json
import logging

from kafka_governance.core.logging import (
    ContextFilter,
    JsonFormatter,
    RedactionFilter,
    redact,
    reset_request_id,
    set_log_username,
    set_request_id,
)


def _record(msg, args=()):
    return logging.LogRecord('kafka_governance.test', logging.INFO, __file__, 1, msg, args, None)


def test_redaction_of_sensitive_keys_and_jaas_passwords():
    record = _record(
        'config %s %s',
        (
            {'connector_config': '{"a": 1}', 'name': 'orders-sink'},
            'sasl.jaas.config=PlainLoginModule required username="svc" password="hunter2";',
        ),
    )

    RedactionFilter(['connector_config']).filter(record)
    message = record.getMessage()

    assert "'connector_config': '[REDACTED]'" in message
    assert 'orders-sink' in message
    assert 'hunter2' not in message


def test_bearer_tokens_are_redacted():
    record = _record('Authorization: Bearer abc.def.ghi')
    RedactionFilter([]).filter(record)
    assert record.getMessage() == 'Authorization: Bearer [REDACTED]'


def test_context_and_json_formatter():
    token = set_request_id('req-123')
    set_log_username('alice')
    try:
        record = _record('approved %s', (7,))
        ContextFilter().filter(record)
        payload = json.loads(JsonFormatter().format(record))
    finally:
        reset_request_id(token)

    assert payload['request_id'] == 'req-123'
    assert payload['username'] == 'alice'
    assert payload['message'] == 'approved 7'


def test_redact_walks_nested_containers():
    value = {'outer': [{'Password': 'x'}, ('Bearer abc',)], 'count': 3}

    assert redact(value, frozenset({'password'})) == {
        'outer': [{'Password': '[REDACTED]'}, ('Bearer [REDACTED]',)],
        'count': 3,
    }

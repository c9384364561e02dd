import os

os.environ.setdefault('DATABASE_URL', 'sqlite://')
os.environ.setdefault('SEED_ON_STARTUP', 'false')
os.environ.setdefault('JWT_SECRET', 'test-secret')
os.environ.setdefault('LOGIN_RATE_LIMIT_ATTEMPTS', '3')

from collections.abc import Callable  # noqa: E402
from dataclasses import dataclass, field  # noqa: E402
from datetime import datetime, timedelta, timezone  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from kafka_governance.core.config import get_settings  # noqa: E402
from kafka_governance.db.db import enable_sqlite_savepoints  # noqa: E402
from kafka_governance.db.models import (  # noqa: E402
    Base,
    KafkaRequest,
    RequestStatus,
    RequestType,
    build_dedup_key,
)
from kafka_governance.db.seed import seed  # noqa: E402
from kafka_governance.security.authz import resolve_identity  # noqa: E402
from kafka_governance.services.cluster_api import ExecutionOutcome  # noqa: E402
from kafka_governance.services.requests import RequestLifecycleService  # noqa: E402


@pytest.fixture
def engine():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    enable_sqlite_savepoints(engine)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_maker(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def db(session_maker):
    with session_maker() as session:
        seed(session)
        yield session


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def alice(db):
    return resolve_identity(db, 'alice')


@pytest.fixture
def bob(db):
    return resolve_identity(db, 'bob')


@pytest.fixture
def dave(db):
    return resolve_identity(db, 'dave')


@pytest.fixture
def superadmin(db):
    return resolve_identity(db, 'superadmin')


@dataclass
class StubClusterApi:
    """Records calls and returns a canned outcome (or raises a canned error)."""

    outcome: ExecutionOutcome = field(default_factory=lambda: ExecutionOutcome(success=True, message='success'))
    error: Exception | None = None
    calls: list = field(default_factory=list)
    during_call: Callable[[], None] | None = None

    def _respond(self):
        if self.during_call:
            self.during_call()
        if self.error:
            raise self.error
        return self.outcome

    def reset_consumer_offsets(self, params, environment, tenant_id):
        self.calls.append(('reset', params, environment, tenant_id))
        return self._respond()

    def execute_connector_request(self, params, environment, tenant_id):
        self.calls.append(('connector', params, environment, tenant_id))
        return self._respond()


@pytest.fixture
def cluster_api():
    return StubClusterApi()


@pytest.fixture
def service(db, cluster_api, settings):
    return RequestLifecycleService(db, cluster_api=cluster_api, settings=settings)


@pytest.fixture
def make_request(db):
    """Insert a request row directly, bypassing validation."""
    base_time = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def _make(
        requestor='alice',
        *,
        team_id=101,
        environment='DEV',
        topicname='orders',
        consumer_group='g1',
        status=RequestStatus.CREATED,
        request_type=RequestType.RESET_CONSUMER_OFFSETS,
        minutes=0,
        connector_name=None,
        tenant_id=1,
    ):
        req = KafkaRequest(
            tenant_id=tenant_id,
            request_type=request_type.value,
            request_status=status.value,
            requestor=requestor,
            requesting_team_id=team_id,
            environment=environment,
            topicname=topicname,
            consumer_group=consumer_group,
            offset_reset_type='EARLIEST' if request_type is RequestType.RESET_CONSUMER_OFFSETS else None,
            connector_name=connector_name,
            connector_config='{"connector.class": "FileStreamSource"}' if connector_name else None,
            description='demo connector' if connector_name else None,
            dedup_key=build_dedup_key(
                request_type.value, environment, topicname, consumer_group, connector_name
            ),
            requesttime=base_time + timedelta(minutes=minutes),
        )
        db.add(req)
        db.flush()
        return req

    return _make

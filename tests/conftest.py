import dataclasses

import pytest

from tracker.models import PollPolicy
from tracker.publisher import InMemoryPublisher
from tracker.registry import Registry
from tracker.service import EventStatusService
from tracker.supervisor import PollerSupervisor

from tests.fakes import FakeClock, ScriptedFetcher


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry():
    return Registry()


@pytest.fixture
def fetcher(clock):
    return ScriptedFetcher(clock)


@pytest.fixture
def publisher():
    return InMemoryPublisher()


@pytest.fixture
def policy():
    return PollPolicy()


@pytest.fixture
def supervisor(registry, fetcher, publisher, clock, policy):
    sup = PollerSupervisor(registry, fetcher, publisher, clock, policy=policy)
    yield sup
    sup.shutdown(drain_timeout=2.0)


@pytest.fixture
def service(registry, supervisor):
    return EventStatusService(registry, supervisor)


@pytest.fixture
def make_service(registry, fetcher, clock, policy):
    """Build a service around a custom publisher; shut down on teardown."""
    created = []

    def _make(publisher, **policy_overrides):
        pol = dataclasses.replace(policy, **policy_overrides)
        sup = PollerSupervisor(registry, fetcher, publisher, clock, policy=pol)
        created.append(sup)
        return EventStatusService(registry, sup)

    yield _make
    for sup in created:
        sup.shutdown(drain_timeout=2.0)

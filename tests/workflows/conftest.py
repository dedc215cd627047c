"""Fixtures wiring the workflows to in-memory collaborators."""

from __future__ import annotations

import pytest

from tempo.assistant import Assistant
from tempo.config import TempoConfig
from tests._fakes import FakeCalendar, FakeMailbox, FakeTasks, ManualClock, RecordingSleep


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def calendar() -> FakeCalendar:
    return FakeCalendar()


@pytest.fixture
def tasks() -> FakeTasks:
    return FakeTasks()


@pytest.fixture
def mailbox() -> FakeMailbox:
    return FakeMailbox()


@pytest.fixture
def config() -> TempoConfig:
    return TempoConfig()


@pytest.fixture
def assistant(config, calendar, tasks, mailbox, clock, sleep) -> Assistant:
    return Assistant.create(
        config,
        calendar=calendar,
        tasks=tasks,
        mailbox=mailbox,
        clock=clock,
        sleep=sleep,
    )

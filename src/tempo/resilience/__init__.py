"""Retry, error translation and offline queueing for collaborator calls."""

from tempo.resilience.classifier import ErrorClass, classify_error, is_transient, translate_error
from tempo.resilience.offline_queue import OfflineQueue, QueuedOperation, ReplayReport
from tempo.resilience.proxy import (
    ResilientCalendarService,
    ResilientMailboxService,
    ResilientServiceProxy,
    ResilientTaskService,
    ServiceRegistry,
)
from tempo.resilience.retry import RetryExecutor, RetryPolicy

__all__ = [
    "ErrorClass",
    "OfflineQueue",
    "QueuedOperation",
    "ReplayReport",
    "ResilientCalendarService",
    "ResilientMailboxService",
    "ResilientServiceProxy",
    "ResilientTaskService",
    "RetryExecutor",
    "RetryPolicy",
    "ServiceRegistry",
    "classify_error",
    "is_transient",
    "translate_error",
]

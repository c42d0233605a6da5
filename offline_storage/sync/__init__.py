"""
Offline replay module.

Provides the replay queue that buffers mutations while offline,
connectivity observers that trigger drains, and the sink interface
used to reach a remote backend.
"""

from .connectivity import (
    ConnectivityObserver,
    ConnectivityState,
    DnsConnectivityProbe,
    ManualConnectivity,
)
from .queue import (
    OperationKind,
    QueueEntry,
    QueueState,
    ReplayConfig,
    ReplayQueue,
)
from .sink import CallbackSink, Sink

__all__ = [
    "ReplayQueue",
    "ReplayConfig",
    "QueueEntry",
    "QueueState",
    "OperationKind",
    "ConnectivityObserver",
    "ConnectivityState",
    "ManualConnectivity",
    "DnsConnectivityProbe",
    "Sink",
    "CallbackSink",
]

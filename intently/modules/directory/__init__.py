"""
Directory Module - Black Box Interface

Purpose: Resolve label/namespace/command selectors to live pods and node agents
Interface: query_pods(), query_agent_pods(), start(), stop(), wait_for_sync()
Hidden: Pod watch, cache locking, live-listing fallback before sync

Can be replaced with any source of pod placement (e.g. a shared informer service).
"""

from .cache import EventKind, PodCache, PodEvent, PodRecord
from .directory import PodDirectory
from .interfaces import Directory
from .rwlock import RWLock

__all__ = ["Directory", "PodDirectory", "PodCache", "PodRecord", "PodEvent", "EventKind", "RWLock"]

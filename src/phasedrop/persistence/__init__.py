"""Persistence — append-only event log and state snapshots."""

from phasedrop.persistence.event_log import EventKind, EventLog, EventRecord
from phasedrop.persistence.state_store import StateStore

__all__ = ["EventKind", "EventLog", "EventRecord", "StateStore"]

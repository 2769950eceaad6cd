"""
Ledger events.

Events are output only: the engine emits them and never reads them back.
Each one is flattened into a read-only, key-sorted record of strings
tagged with the package hash of the ledger that issued it.
"""

import logging
from collections import namedtuple
from types import MappingProxyType

logger = logging.getLogger(__name__)


class Transfer(namedtuple("Transfer", ["sender", "recipient", "value"])):
    __slots__ = ()
    event_type = "transfer"

    def fields(self):
        return {"from": str(self.sender), "to": str(self.recipient), "value": str(self.value)}


class Approval(namedtuple("Approval", ["owner", "spender", "value"])):
    __slots__ = ()
    event_type = "approve"

    def fields(self):
        return {"owner": str(self.owner), "spender": str(self.spender), "value": str(self.value)}


def to_record(event, package_hash) -> MappingProxyType:
    record = {
        "contract_package_hash": str(package_hash),
        "event_type": event.event_type,
    }
    record.update(event.fields())
    return MappingProxyType(dict(sorted(record.items())))


class EventLog:
    """Append-only sequence of event records."""

    def __init__(self):
        self._records = []

    def __call__(self, record):
        self.append(record)

    def append(self, record):
        self.extend([record])

    def extend(self, records):
        """Append every record or, if one is malformed, none of them."""
        frozen = [
            r if isinstance(r, MappingProxyType) else MappingProxyType(dict(r))
            for r in records
        ]
        self._records.extend(frozen)

    def __len__(self):
        return len(self._records)

    def __iter__(self):
        return iter(tuple(self._records))

    def __getitem__(self, index):
        if isinstance(index, slice):
            return tuple(self._records[index])
        return self._records[index]

    def of_type(self, event_type):
        return [r for r in self._records if r["event_type"] == event_type]


class EventEmitter:
    """Serializes events for one ledger instance and hands them to a sink."""

    def __init__(self, package_hash, sink=None):
        self.package_hash = package_hash
        self.sink = sink if sink is not None else EventLog()

    def prepare(self, events):
        """Serialize `events` into records without publishing them."""
        return [to_record(event, self.package_hash) for event in events]

    def publish(self, records):
        """
        Hand `records` to the sink. An `EventLog` takes them all at once;
        other sinks are called once per record.
        """
        for record in records:
            logger.debug("Event %s: %s", record["event_type"], dict(record))
        if isinstance(self.sink, EventLog):
            self.sink.extend(records)
        else:
            for record in records:
                self.sink(record)
        return records

    def emit(self, event):
        return self.publish(self.prepare([event]))[0]

    def emit_all(self, events):
        return self.publish(self.prepare(events))

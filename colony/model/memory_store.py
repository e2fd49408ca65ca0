"""Quick card: versioned key-value memory scoped to agents, zones, and a few global registries."""

from __future__ import annotations

import copy
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import config

log = logging.getLogger(__name__)


class Scope(str, Enum):
    AGENT = "agent"
    ZONE = "zone"
    GLOBAL = "global"


# Named global registries
EXPANSION_TARGETS = "expansion_targets"
SCOUTED_ZONES = "scouted_zones"
REMOTE_ZONES = "remote_zones"
TASKS = "tasks"


@dataclass
class Record:
    version: int
    data: Dict[str, Any] = field(default_factory=dict)


class MigrationError(RuntimeError):
    """Raised when a registered migration step cannot transform a record."""


class StateStore:
    """Store card: get/set of opaque blobs, each stamped with the protocol version it was written under."""

    def __init__(self) -> None:
        self._records: Dict[Scope, Dict[str, Record]] = {scope: {} for scope in Scope}

    def get(self, scope: Scope, key: str) -> Optional[Record]:
        return self._records[scope].get(key)

    def get_data(self, scope: Scope, key: str, default: Any = None) -> Any:
        record = self.get(scope, key)
        if record is None:
            return default
        return record.data

    def set(self, scope: Scope, key: str, data: Dict[str, Any], version: int = config.PROTOCOL_VERSION) -> Record:
        record = Record(version=version, data=data)
        self._records[scope][key] = record
        return record

    def setdefault(self, scope: Scope, key: str, factory: Callable[[], Dict[str, Any]]) -> Dict[str, Any]:
        """I hand back the live data dict, creating it at the current version when missing."""
        record = self.get(scope, key)
        if record is None:
            record = self.set(scope, key, factory())
        return record.data

    def delete(self, scope: Scope, key: str) -> bool:
        return self._records[scope].pop(key, None) is not None

    def keys(self, scope: Scope) -> List[str]:
        return list(self._records[scope])

    def __len__(self) -> int:
        return sum(len(bucket) for bucket in self._records.values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            scope.value: {key: {"version": rec.version, "data": rec.data} for key, rec in bucket.items()}
            for scope, bucket in self._records.items()
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "StateStore":
        store = cls()
        for scope in Scope:
            for key, raw in (payload.get(scope.value) or {}).items():
                store._records[scope][key] = Record(version=int(raw.get("version", 0)), data=dict(raw.get("data") or {}))
        return store

    def save(self, path: Path) -> None:
        """Export cue: dump every scope as JSON."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, path: Path) -> "StateStore":
        with path.open("r", encoding="utf-8") as f:
            return cls.from_dict(json.load(f))


MigrationFn = Callable[[Dict[str, Any]], Dict[str, Any]]


class Migrations:
    """I keep per-scope upgrade steps keyed by (from_version, to_version) and run them once at load."""

    def __init__(self) -> None:
        self._steps: Dict[Scope, Dict[Tuple[int, int], MigrationFn]] = {scope: {} for scope in Scope}

    def register(self, scope: Scope, from_version: int, to_version: int) -> Callable[[MigrationFn], MigrationFn]:
        if to_version <= from_version:
            raise ValueError(f"migration must move forward, got {from_version}->{to_version}")

        def decorator(fn: MigrationFn) -> MigrationFn:
            self._steps[scope][(from_version, to_version)] = fn
            return fn

        return decorator

    def plan(self, scope: Scope, from_version: int, to_version: int) -> Optional[List[Tuple[int, int]]]:
        """Route card: chain steps forward, preferring the longest jump each time; None if no route."""
        if from_version == to_version:
            return []
        route: List[Tuple[int, int]] = []
        current = from_version
        while current < to_version:
            options = [key for key in self._steps[scope] if key[0] == current and key[1] <= to_version]
            if not options:
                return None
            step = max(options, key=lambda key: key[1])
            route.append(step)
            current = step[1]
        return route

    def migrate_record(self, scope: Scope, record: Record, to_version: int = config.PROTOCOL_VERSION) -> bool:
        """Upgrade one record in place; False means there was no route and the caller should drop it."""
        if record.version > to_version:
            return False
        route = self.plan(scope, record.version, to_version)
        if route is None:
            return False
        data = copy.deepcopy(record.data)
        for step in route:
            try:
                data = self._steps[scope][step](data)
            except (KeyError, TypeError, ValueError) as exc:
                raise MigrationError(f"{scope.value} migration {step[0]}->{step[1]} failed: {exc}") from exc
        record.data = data
        record.version = to_version
        return True

    def migrate_store(self, store: StateStore, to_version: int = config.PROTOCOL_VERSION) -> Dict[str, Dict[str, int]]:
        """Load-time pass: migrate what has a route, drop what does not, and report counts per scope."""
        report: Dict[str, Dict[str, int]] = {}
        for scope in Scope:
            migrated = dropped = 0
            for key in store.keys(scope):
                record = store.get(scope, key)
                if record is None or record.version == to_version:
                    continue
                if self.migrate_record(scope, record, to_version):
                    migrated += 1
                else:
                    store.delete(scope, key)
                    dropped += 1
            report[scope.value] = {"migrated": migrated, "dropped": dropped}
            if migrated or dropped:
                log.info("memory %s: migrated=%d dropped=%d", scope.value, migrated, dropped)
        return report


def default_migrations() -> Migrations:
    """I register the upgrade steps older memory layouts need."""
    migrations = Migrations()

    @migrations.register(Scope.AGENT, 1, 2)
    def _working_flag_to_state(data: Dict[str, Any]) -> Dict[str, Any]:
        working = data.pop("working", None)
        if "state" not in data and working is not None:
            data["state"] = "delivering" if working else "harvesting"
        return data

    @migrations.register(Scope.AGENT, 2, 3)
    def _legacy_keys(data: Dict[str, Any]) -> Dict[str, Any]:
        activity = data.pop("activity", None)
        if activity and "state" not in data:
            data["state"] = activity
        source = data.pop("targetSourceId", None)
        if source and "source_id" not in data:
            data["source_id"] = source
        data.setdefault("task_id", None)
        return data

    @migrations.register(Scope.ZONE, 2, 3)
    def _zone_keep_stage(data: Dict[str, Any]) -> Dict[str, Any]:
        kept = {key: data[key] for key in ("stage", "level", "upgrade_focus", "last_seen") if key in data}
        kept.setdefault("counts", {})
        return kept

    return migrations


def prune_agent_memory(store: StateStore, live_ids: set) -> List[str]:
    """Drop memory blobs for agents that no longer exist."""
    gone = [key for key in store.keys(Scope.AGENT) if key not in live_ids]
    for key in gone:
        store.delete(Scope.AGENT, key)
    return gone


def prune_zone_records(store: StateStore, tick: int, ttl: int = config.ZONE_RECORD_TTL) -> List[str]:
    """Drop zone records unseen for longer than the long TTL."""
    gone = []
    for key in store.keys(Scope.ZONE):
        data = store.get_data(Scope.ZONE, key, {})
        last_seen = data.get("last_seen")
        if last_seen is None or tick - int(last_seen) > ttl:
            store.delete(Scope.ZONE, key)
            gone.append(key)
    return gone

from __future__ import annotations

import pytest

import config
from colony.model.memory_store import (
    MigrationError,
    Migrations,
    Record,
    Scope,
    StateStore,
    default_migrations,
    prune_agent_memory,
    prune_zone_records,
)


def test_old_agent_records_are_upgraded_to_the_current_layout():
    store = StateStore()
    store.set(Scope.AGENT, "h0", {"role": "harvester", "working": True, "targetSourceId": "src3"}, version=1)

    report = default_migrations().migrate_store(store)

    record = store.get(Scope.AGENT, "h0")
    assert report["agent"] == {"migrated": 1, "dropped": 0}
    assert record.version == config.PROTOCOL_VERSION
    assert record.data == {"role": "harvester", "state": "delivering", "source_id": "src3", "task_id": None}


def test_records_without_a_route_are_dropped():
    store = StateStore()
    store.set(Scope.AGENT, "ancient", {"role": "harvester"}, version=0)
    store.set(Scope.AGENT, "future", {"role": "harvester"}, version=config.PROTOCOL_VERSION + 1)
    store.set(Scope.AGENT, "current", {"role": "hauler"})

    report = default_migrations().migrate_store(store)

    assert report["agent"] == {"migrated": 0, "dropped": 2}
    assert store.keys(Scope.AGENT) == ["current"]


def test_zone_records_keep_only_what_still_means_something():
    store = StateStore()
    store.set(Scope.ZONE, "Z00", {"stage": "growth", "last_seen": 40, "build_queue": [1, 2]}, version=2)

    default_migrations().migrate_store(store)

    assert store.get_data(Scope.ZONE, "Z00") == {"stage": "growth", "last_seen": 40, "counts": {}}


def test_migration_route_prefers_the_longest_jump():
    migrations = Migrations()
    for step in ((1, 2), (2, 3), (1, 3), (3, 4)):
        migrations.register(Scope.GLOBAL, *step)(lambda data: data)

    assert migrations.plan(Scope.GLOBAL, 1, 4) == [(1, 3), (3, 4)]
    assert migrations.plan(Scope.GLOBAL, 4, 4) == []
    assert migrations.plan(Scope.GLOBAL, 0, 4) is None


def test_backwards_migration_is_rejected():
    with pytest.raises(ValueError):
        Migrations().register(Scope.AGENT, 3, 2)


def test_a_broken_step_raises_and_leaves_the_record_alone():
    migrations = Migrations()

    @migrations.register(Scope.AGENT, 2, 3)
    def _needs_a_key(data):
        data["state"] = data["missing"]
        return data

    record = Record(version=2, data={"role": "scout"})
    with pytest.raises(MigrationError):
        migrations.migrate_record(Scope.AGENT, record, 3)
    assert record.version == 2
    assert record.data == {"role": "scout"}


def test_store_round_trips_through_a_file(tmp_path):
    store = StateStore()
    store.set(Scope.AGENT, "h0", {"role": "harvester", "state": "harvesting"})
    store.set(Scope.GLOBAL, "tasks", {"next_id": 4}, version=2)
    path = tmp_path / "nested" / "memory.json"

    store.save(path)
    loaded = StateStore.load(path)

    assert loaded.to_dict() == store.to_dict()
    assert len(loaded) == 2


def test_setdefault_returns_the_live_dict():
    store = StateStore()

    data = store.setdefault(Scope.ZONE, "Z00", dict)
    data["stage"] = "bootstrap"

    assert store.get_data(Scope.ZONE, "Z00") == {"stage": "bootstrap"}
    assert store.setdefault(Scope.ZONE, "Z00", dict) is data


def test_pruning_forgets_dead_agents_and_stale_zones():
    store = StateStore()
    store.set(Scope.AGENT, "alive", {})
    store.set(Scope.AGENT, "dead", {})
    store.set(Scope.ZONE, "fresh", {"last_seen": 100})
    store.set(Scope.ZONE, "stale", {"last_seen": 0})
    store.set(Scope.ZONE, "unknown", {})

    assert prune_agent_memory(store, {"alive"}) == ["dead"]
    gone = prune_zone_records(store, tick=config.ZONE_RECORD_TTL + 50)

    assert sorted(gone) == ["stale", "unknown"]
    assert store.keys(Scope.ZONE) == ["fresh"]

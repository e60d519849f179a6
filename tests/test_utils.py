import json
from dataclasses import dataclass

import numpy as np
import pytest

from election.models import LifecycleState
from utils.storage import JsonFileKeyValueStore, MemoryKeyValueStore
from utils.utils import (
    PerformanceMonitor,
    compute_hash,
    create_performance_report,
    format_duration,
    save_results,
    short,
    to_serializable,
)


@dataclass
class Row:
    state: LifecycleState
    count: np.int64


def test_to_serializable_and_save(tmp_path):
    data = {'rows': [Row(LifecycleState.ACTIVE, np.int64(3))]}
    assert to_serializable(data) == {'rows': [{'state': 'active', 'count': 3}]}

    path = tmp_path / "out" / "results.json"
    save_results(data, path)
    assert json.loads(path.read_text()) == {'rows': [{'state': 'active', 'count': 3}]}


def test_compute_hash_is_key_order_independent():
    assert compute_hash({'a': 1, 'b': 2}) == compute_hash({'b': 2, 'a': 1})
    assert compute_hash("x") != compute_hash("y")


def test_performance_monitor_summary():
    monitor = PerformanceMonitor()
    for _ in range(3):
        with monitor.start_operation("build_proof"):
            pass
    with pytest.raises(RuntimeError):
        with monitor.start_operation("cast_vote"):
            raise RuntimeError("boom")

    summary = monitor.get_summary()
    assert summary['total_operations'] == 4
    assert summary['operations']['build_proof']['count'] == 3
    assert "build_proof:" in create_performance_report(monitor)

    monitor.reset()
    assert monitor.get_summary()['total_operations'] == 0


def test_format_duration_and_short():
    assert format_duration(0.0005) == "500.0µs"
    assert format_duration(0.25) == "250.0ms"
    assert format_duration(90) == "1m 30.0s"
    assert short("0123456789abcdef0123", 8) == "01234567..."


@pytest.mark.parametrize("factory", [
    lambda tmp: MemoryKeyValueStore(),
    lambda tmp: JsonFileKeyValueStore(tmp / "kv.json"),
])
def test_key_value_store(tmp_path, factory):
    store = factory(tmp_path)
    store.put("a", {'x': 1})
    with store.transaction() as tx:
        tx.put("b", 2)
    assert store.get("a") == {'x': 1}
    assert sorted(store.keys()) == ["a", "b"]
    store.delete("a")
    assert store.get("a") is None

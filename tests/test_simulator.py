import io
import json
import os

import pytest

from cache import AccessOutcome, Cache, Geometry
from simulator import RunningStats, TraceSimulator, classify, describe
from traces import TraceParseError, iter_trace

TRACE_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "sample_traces")


def write(tmp_path, text, name="t.trace"):
    path = tmp_path / name
    path.write_text(text)
    return str(path)


@pytest.fixture
def cache():
    return Cache(Geometry(0, 2, 0))


def test_load_and_store_touch_the_set_once(cache):
    stats = RunningStats()
    assert classify(cache, "L", 0, 1, stats) == [AccessOutcome.MISS]
    assert classify(cache, "S", 0, 1, stats) == [AccessOutcome.HIT]
    assert stats == RunningStats(hits=1, misses=1, evictions=0)


def test_modify_on_resident_tag(cache):
    classify(cache, "L", 0, 1, RunningStats())
    stats = RunningStats()
    outcomes = classify(cache, "M", 0, 1, stats)
    assert outcomes == [AccessOutcome.HIT, AccessOutcome.HIT]
    assert stats.as_tuple() == (2, 0, 0)


def test_modify_into_free_line(cache):
    stats = RunningStats()
    outcomes = classify(cache, "M", 0, 1, stats)
    assert describe(outcomes) == "miss hit"
    assert stats.as_tuple() == (1, 1, 0)


def test_modify_into_full_set(cache):
    classify(cache, "L", 0, 1, RunningStats())
    classify(cache, "L", 0, 2, RunningStats())
    stats = RunningStats()
    outcomes = classify(cache, "M", 0, 3, stats)
    assert describe(outcomes) == "miss eviction hit"
    assert stats.as_tuple() == (1, 1, 1)


def test_unknown_op_is_ignored(cache):
    stats = RunningStats()
    assert classify(cache, "X", 0, 1, stats) == []
    assert classify(cache, "I", 0, 1, stats) == []
    assert stats.as_tuple() == (0, 0, 0)
    assert cache.occupancy().tolist() == [0]


def test_running_stats_rate_and_summary():
    stats = RunningStats(3, 5, 1)
    assert stats.as_tuple() == (3, 5, 1)
    assert stats.accesses == 8
    assert stats.hit_rate == pytest.approx(3 / 8)
    assert RunningStats().hit_rate == 0.0
    assert stats.summary_line() == "hits:3 misses:5 evictions:1"


def test_end_to_end_direct_mapped(tmp_path):
    path = write(tmp_path, " L 10,1\n L 20,1\n L 10,1\n")
    sim = TraceSimulator(Geometry(2, 1, 4))
    summary = sim.run(path)
    assert sim.stats.as_tuple() == (1, 2, 0)
    assert summary["hits"] == 1
    assert summary["misses"] == 2
    assert summary["evictions"] == 0
    assert summary["records"] == 3


def test_verbose_output(tmp_path):
    path = write(tmp_path, " L 10,1\n M 20,1\n L 22,1\n S 18,1\n L 110,1\n L 210,1\n M 12,1\n")
    out = io.StringIO()
    sim = TraceSimulator(Geometry(4, 1, 4), verbose=True, out=out)
    sim.run(path)
    assert out.getvalue().splitlines() == [
        "L 10,1 miss",
        "M 20,1 miss hit",
        "L 22,1 hit",
        "S 18,1 hit",
        "L 110,1 miss eviction",
        "L 210,1 miss eviction",
        "M 12,1 miss eviction hit",
    ]
    assert sim.stats.as_tuple() == (4, 5, 3)


def test_sample_traces():
    sim = TraceSimulator(Geometry(4, 1, 4))
    sim.run(os.path.join(TRACE_DIR, "yi.trace"))
    assert sim.stats.summary_line() == "hits:4 misses:5 evictions:3"

    sim = TraceSimulator(Geometry(4, 1, 4))
    sim.run(os.path.join(TRACE_DIR, "stack_stores.trace"))
    assert sim.stats.summary_line() == "hits:4 misses:5 evictions:0"


def test_malformed_lines_are_skipped(tmp_path):
    path = write(tmp_path, " L 10,1\nnot a record\n L 10,1\n")
    sim = TraceSimulator(Geometry(2, 1, 4))
    summary = sim.run(path)
    assert sim.stats.as_tuple() == (1, 1, 0)
    assert summary["skipped_lines"] == 1
    assert sim.skipped_lines == [2]


def test_strict_mode_aborts(tmp_path):
    path = write(tmp_path, " L 10,1\nnot a record\n")
    sim = TraceSimulator(Geometry(2, 1, 4), strict=True)
    with pytest.raises(TraceParseError):
        sim.run(path)


def test_missing_trace_leaves_stats_untouched(tmp_path):
    sim = TraceSimulator(Geometry(2, 1, 4))
    with pytest.raises(OSError):
        sim.run(str(tmp_path / "nope.trace"))
    assert sim.stats.as_tuple() == (0, 0, 0)


def test_save_results(tmp_path):
    sim = TraceSimulator(Geometry(2, 1, 4))
    sim.feed(iter_trace([" L 10,1\n", " L 10,1\n"]))
    path = sim.save_results(sim.summary("inline"), str(tmp_path / "out" / "summary.json"))
    with open(path) as f:
        data = json.load(f)
    assert data["geometry"] == {"s": 2, "E": 1, "b": 4}
    assert (data["hits"], data["misses"], data["evictions"]) == (1, 1, 0)
    assert data["cache"]["used_lines"] == 1


def test_undecodable_bytes_are_skipped(tmp_path):
    path = tmp_path / "binary.trace"
    path.write_bytes(b" L 10,1\n\xff\xfe garbage\n L 10,1\n")
    sim = TraceSimulator(Geometry(2, 1, 4))
    summary = sim.run(str(path))
    assert sim.stats.as_tuple() == (1, 1, 0)
    assert sim.skipped_lines == [2]
    assert summary["records"] == 2


def test_undecodable_bytes_abort_in_strict_mode(tmp_path):
    path = tmp_path / "binary.trace"
    path.write_bytes(b" L 10,1\n\xff\xfe garbage\n")
    sim = TraceSimulator(Geometry(2, 1, 4), strict=True)
    with pytest.raises(TraceParseError) as excinfo:
        sim.run(str(path))
    assert excinfo.value.lineno == 2

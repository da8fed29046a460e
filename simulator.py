# simulator.py
import json
import logging
import os
import time

from cache import AccessOutcome, Cache, Geometry, decode
from traces import read_trace

LOGGER = logging.getLogger("simulator")

SINGLE_PROBE_OPS = ("L", "S")
MODIFY_OP = "M"


class RunningStats:
    """Hit/miss/eviction counters for one simulation run."""

    def __init__(self, hits=0, misses=0, evictions=0):
        self.hits = hits
        self.misses = misses
        self.evictions = evictions

    def record(self, outcome):
        if outcome is AccessOutcome.HIT:
            self.hits += 1
        else:
            self.misses += 1
            if outcome is AccessOutcome.MISS_EVICTION:
                self.evictions += 1

    @property
    def accesses(self):
        return self.hits + self.misses

    @property
    def hit_rate(self):
        return self.hits / self.accesses if self.accesses else 0.0

    def as_tuple(self):
        return self.hits, self.misses, self.evictions

    def summary_line(self):
        return f"hits:{self.hits} misses:{self.misses} evictions:{self.evictions}"

    def __eq__(self, other):
        if not isinstance(other, RunningStats):
            return NotImplemented
        return self.as_tuple() == other.as_tuple()

    def __repr__(self):
        return f"RunningStats(hits={self.hits}, misses={self.misses}, evictions={self.evictions})"


def classify(cache, op, set_index, tag, stats):
    """
    Run the probes for one trace operation and fold them into `stats`.

    Loads and stores are a single probe. A modify is a load followed by a
    store to the same block, so its second probe always hits. Any other op
    is ignored. Returns the list of probe outcomes (empty when ignored).
    """
    if op in SINGLE_PROBE_OPS:
        outcomes = [cache.probe(set_index, tag)]
    elif op == MODIFY_OP:
        outcomes = [cache.probe(set_index, tag), cache.probe(set_index, tag)]
    else:
        return []
    for outcome in outcomes:
        stats.record(outcome)
    return outcomes


def describe(outcomes):
    return " ".join(outcome.value for outcome in outcomes)


def format_verbose(record, outcomes):
    return f"{record.op} {record.address:x},{record.size} {describe(outcomes)}"


class TraceSimulator:
    def __init__(self, geometry: Geometry, verbose=False, strict=False, out=None):
        self.geometry = geometry
        self.cache = Cache(geometry)
        self.verbose = verbose
        self.strict = strict
        self.out = out
        self.stats = RunningStats()
        self.skipped_lines = []
        self.records = 0

    def step(self, record):
        """Simulate a single trace record. Returns its probe outcomes."""
        decoded = decode(record.address, self.geometry)
        outcomes = classify(self.cache, record.op, decoded.set_index, decoded.tag, self.stats)
        if not outcomes:
            LOGGER.debug("ignoring op %r at %#x", record.op, record.address)
            return outcomes
        self.records += 1
        if self.verbose:
            print(format_verbose(record, outcomes), file=self.out)
        return outcomes

    def feed(self, records):
        for record in records:
            self.step(record)
        return self.stats

    def run(self, trace_path):
        """
        Replay the trace at `trace_path` through the cache.
        The file is opened before the first record is read, so an unreadable
        trace fails with OSError and leaves the statistics untouched.
        """
        start = time.time()
        self.feed(read_trace(trace_path, strict=self.strict, skipped=self.skipped_lines))
        end = time.time()
        if self.skipped_lines:
            LOGGER.warning("%s: skipped %d malformed line(s)", trace_path, len(self.skipped_lines))
        LOGGER.info("%s: %d records in %.3fs", trace_path, self.records, end - start)
        return self.summary(trace_path, end - start)

    def summary(self, trace_path=None, duration_s=0.0):
        return {
            "trace": trace_path,
            "geometry": self.geometry.as_dict(),
            "hits": self.stats.hits,
            "misses": self.stats.misses,
            "evictions": self.stats.evictions,
            "accesses": self.stats.accesses,
            "hit_rate": self.stats.hit_rate,
            "records": self.records,
            "skipped_lines": len(self.skipped_lines),
            "duration_s": duration_s,
            "cache": self.cache.stats(),
        }

    def save_results(self, summary, path):
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(path, "w") as f:
            json.dump(summary, f, indent=2)
        return path

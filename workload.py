# workload.py
import numpy as np

from traces import TraceRecord, write_trace

PATTERNS = ("sequential", "random", "mixed")


class WorkloadGenerator:
    """
    Synthetic data-access traces in valgrind format.
    Addresses are block-aligned inside a working set of `working_set_kb`;
    `sequential` walks it with wrap-around, `random` draws uniformly, and
    `mixed` is 80% sequential with random jumps.
    """

    def __init__(self, working_set_kb=64, block_size=64, num_requests=1000,
                 read_ratio=0.7, modify_ratio=0.1, access_pattern="mixed",
                 base_address=0x10000, access_size=8, random_seed=None):
        if access_pattern not in PATTERNS:
            raise ValueError(f"unknown access pattern {access_pattern!r}, expected one of {PATTERNS}")
        if not 0.0 <= read_ratio <= 1.0 or not 0.0 <= modify_ratio <= 1.0:
            raise ValueError("read_ratio and modify_ratio must be in [0, 1]")
        if read_ratio + modify_ratio > 1.0:
            raise ValueError("read_ratio + modify_ratio must not exceed 1")
        self.rng = np.random.default_rng(random_seed)
        self.block_size = block_size
        self.num_blocks = max(1, (working_set_kb * 1024) // block_size)
        self.num_requests = num_requests
        self.read_ratio = read_ratio
        self.modify_ratio = modify_ratio
        self.access_pattern = access_pattern
        self.base_address = base_address
        self.access_size = access_size
        self._seq_ptr = 0

    @classmethod
    def from_config(cls, cfg):
        return cls(
            working_set_kb=cfg.get("working_set_kb", 64),
            block_size=cfg.get("block_size", 64),
            num_requests=cfg.get("num_requests", 1000),
            read_ratio=cfg.get("read_ratio", 0.7),
            modify_ratio=cfg.get("modify_ratio", 0.1),
            access_pattern=cfg.get("access_pattern", "mixed"),
            base_address=cfg.get("base_address", 0x10000),
            access_size=cfg.get("access_size", 8),
            random_seed=cfg.get("random_seed", None),
        )

    def _next_sequential(self):
        block = self._seq_ptr
        self._seq_ptr = (block + 1) % self.num_blocks
        return block

    def _next_block(self):
        if self.access_pattern == "sequential":
            return self._next_sequential()
        elif self.access_pattern == "random":
            return int(self.rng.integers(0, self.num_blocks))
        else:  # mixed
            if self.rng.random() < 0.8:
                return self._next_sequential()
            return int(self.rng.integers(0, self.num_blocks))

    def _next_op(self):
        draw = self.rng.random()
        if draw < self.read_ratio:
            return "L"
        if draw < self.read_ratio + self.modify_ratio:
            return "M"
        return "S"

    def records(self):
        for _ in range(self.num_requests):
            address = self.base_address + self._next_block() * self.block_size
            yield TraceRecord(self._next_op(), address, self.access_size)

    def write(self, path):
        return write_trace(self.records(), path)

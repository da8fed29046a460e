# cache.py
import collections
import enum

import numpy as np

ADDRESS_BITS = 64
ADDRESS_LIMIT = 1 << ADDRESS_BITS


class ConfigurationError(ValueError):
    pass


class AllocationError(MemoryError):
    pass


DecodedAddress = collections.namedtuple("DecodedAddress", "tag set_index offset")


class AccessOutcome(enum.Enum):
    HIT = "hit"
    MISS = "miss"
    MISS_EVICTION = "miss eviction"


class Geometry:
    """
    Cache geometry: s set-index bits, b block-offset bits, E lines per set.
    Validated on construction and read-only afterwards.
    """

    __slots__ = ("_s", "_b", "_E")

    def __init__(self, s, E, b):
        for name, value in (("s", s), ("E", E), ("b", b)):
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigurationError(f"{name} must be an integer, got {value!r}")
        if s < 0 or b < 0:
            raise ConfigurationError(f"bit widths must be >= 0 (s={s}, b={b})")
        if E < 1:
            raise ConfigurationError(f"associativity E must be >= 1, got {E}")
        if s + b > ADDRESS_BITS:
            raise ConfigurationError(f"s + b must not exceed {ADDRESS_BITS} (s={s}, b={b})")
        self._s = s
        self._b = b
        self._E = E

    @property
    def s(self):
        return self._s

    @property
    def b(self):
        return self._b

    @property
    def E(self):
        return self._E

    @property
    def num_sets(self):
        return 1 << self._s

    @property
    def block_size(self):
        return 1 << self._b

    def as_dict(self):
        return {"s": self._s, "E": self._E, "b": self._b}

    def __eq__(self, other):
        if not isinstance(other, Geometry):
            return NotImplemented
        return (self._s, self._E, self._b) == (other._s, other._E, other._b)

    def __hash__(self):
        return hash((self._s, self._E, self._b))

    def __repr__(self):
        return f"Geometry(s={self._s}, E={self._E}, b={self._b})"


def decode(address, geometry):
    """Split a 64-bit address into (tag, set_index, offset)."""
    if not 0 <= address < ADDRESS_LIMIT:
        raise ValueError(f"address {address!r} is outside the 64-bit range")
    s, b = geometry.s, geometry.b
    offset = address & ((1 << b) - 1)
    set_index = (address >> b) & ((1 << s) - 1)
    # Python shifts are unbounded, so s + b == 64 gives a tag of 0.
    tag = address >> (b + s)
    return DecodedAddress(tag, set_index, offset)


def encode(decoded, geometry):
    s, b = geometry.s, geometry.b
    return (decoded.tag << (s + b)) | (decoded.set_index << b) | decoded.offset


class CacheLine:
    __slots__ = ("valid", "tag", "recency")

    def __init__(self):
        self.valid = False
        self.tag = 0
        self.recency = 0

    def __repr__(self):
        return f"CacheLine(valid={self.valid}, tag={self.tag:#x}, recency={self.recency})"


class CacheSet:
    """
    Fixed group of E lines with LRU replacement.
    Recency is a per-set counter: each touched line gets max(recency) + 1,
    so the least recently used line is the valid one with the smallest value.
    """

    __slots__ = ("lines",)

    def __init__(self, associativity):
        self.lines = [CacheLine() for _ in range(associativity)]

    def max_recency(self):
        # -1 when no line is valid
        highest = -1
        for line in self.lines:
            if line.valid and line.recency > highest:
                highest = line.recency
        return highest

    def find(self, tag):
        for index, line in enumerate(self.lines):
            if line.valid and line.tag == tag:
                return index
        return -1

    def find_empty(self):
        for index, line in enumerate(self.lines):
            if not line.valid:
                return index
        return -1

    def find_lru(self):
        victim = -1
        lowest = None
        for index, line in enumerate(self.lines):
            if not line.valid:
                continue
            # strict < keeps the lowest index on ties
            if lowest is None or line.recency < lowest:
                victim = index
                lowest = line.recency
        return victim

    def probe(self, tag):
        """
        Look up `tag`, filling or evicting a line on a miss.
        Returns the AccessOutcome of this single probe.
        """
        # Read the max before any line is touched.
        highest = self.max_recency()

        index = self.find(tag)
        if index != -1:
            self.lines[index].recency = highest + 1
            return AccessOutcome.HIT

        index = self.find_empty()
        if index != -1:
            line = self.lines[index]
            line.valid = True
            line.tag = tag
            line.recency = 1 if highest == -1 else highest + 1
            return AccessOutcome.MISS

        line = self.lines[self.find_lru()]
        line.tag = tag
        line.recency = highest + 1
        return AccessOutcome.MISS_EVICTION

    def valid_count(self):
        return sum(1 for line in self.lines if line.valid)

    def tags(self):
        return [line.tag for line in self.lines if line.valid]


class Cache:
    """
    Set-associative cache store: 2**s sets of E lines each.
    Only hit/miss/eviction state is modelled, no data.
    """

    def __init__(self, geometry):
        self.geometry = geometry
        try:
            # Preallocate so an impossible set count fails before the fill loop.
            sets = [None] * geometry.num_sets
            for i in range(geometry.num_sets):
                sets[i] = CacheSet(geometry.E)
        except (MemoryError, OverflowError) as exc:
            raise AllocationError(f"cannot allocate cache for {geometry!r}") from exc
        self.sets = sets

    @property
    def num_sets(self):
        return len(self.sets)

    @property
    def associativity(self):
        return self.geometry.E

    def probe(self, set_index, tag):
        return self.sets[set_index].probe(tag)

    def occupancy(self):
        return np.fromiter((s.valid_count() for s in self.sets), dtype=np.int64, count=len(self.sets))

    def stats(self):
        used_lines = int(self.occupancy().sum())
        return {
            "num_sets": self.num_sets,
            "associativity": self.associativity,
            "block_size": self.geometry.block_size,
            "total_lines": self.num_sets * self.associativity,
            "used_lines": used_lines,
        }

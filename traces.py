# traces.py
"""
Valgrind lackey trace records.

Data accesses look like ` L 7ff000398,8` (leading space, op, hex address,
decimal size). Instruction fetches start in column 0 with `I` and are not
simulated.
"""
import logging
import re

LOGGER = logging.getLogger("traces")

DATA_OPS = ("L", "S", "M")
INSTRUCTION_MARKER = "I"

_RECORD_RE = re.compile(r"^\s*([A-Za-z])\s+([0-9a-fA-F]+)\s*,\s*(\d+)\s*$")


class TraceParseError(ValueError):
    def __init__(self, message, path=None, lineno=None):
        self.path = path
        self.lineno = lineno
        where = ""
        if path is not None:
            where = f"{path}:{lineno}: " if lineno is not None else f"{path}: "
        super().__init__(where + message)


class TraceRecord:
    __slots__ = ("op", "address", "size")

    def __init__(self, op, address, size):
        self.op = op
        self.address = address
        self.size = size

    def to_line(self):
        return f" {self.op} {self.address:x},{self.size}"

    def __eq__(self, other):
        if not isinstance(other, TraceRecord):
            return NotImplemented
        return (self.op, self.address, self.size) == (other.op, other.address, other.size)

    def __repr__(self):
        return f"TraceRecord({self.op!r}, {self.address:#x}, {self.size})"


def parse_line(raw, path=None, lineno=None):
    """
    Parse one trace line.
    Returns None for blank lines and instruction fetches, a TraceRecord
    otherwise. Raises TraceParseError if the line has the wrong shape.
    """
    line = raw.rstrip("\r\n")
    if not line.strip():
        return None
    if line.startswith(INSTRUCTION_MARKER):
        return None

    match = _RECORD_RE.match(line)
    if match is None:
        raise TraceParseError(f"malformed trace line: {raw!r}", path, lineno)
    op, address, size = match.groups()
    address = int(address, 16)
    if address >= 1 << 64:
        raise TraceParseError(f"address {address:#x} does not fit in 64 bits", path, lineno)
    return TraceRecord(op, address, int(size))


def iter_trace(lines, path=None, strict=False, skipped=None):
    """
    Yield TraceRecords from an iterable of lines.
    Malformed lines are logged and skipped unless `strict` is set, in which
    case the first one raises. Skipped line numbers are appended to `skipped`
    when a list is given.
    """
    for lineno, raw in enumerate(lines, start=1):
        try:
            record = parse_line(raw, path, lineno)
        except TraceParseError as exc:
            if strict:
                raise
            LOGGER.warning("skipping %s", exc)
            if skipped is not None:
                skipped.append(lineno)
            continue
        if record is not None:
            yield record


def read_trace(path, strict=False, skipped=None):
    # Undecodable bytes become U+FFFD so the line fails the record pattern.
    with open(path, "r", encoding="ascii", errors="replace") as f:
        yield from iter_trace(f, path=path, strict=strict, skipped=skipped)


def write_trace(records, path):
    with open(path, "w", encoding="ascii") as f:
        for record in records:
            f.write(record.to_line() + "\n")
    return path

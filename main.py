# main.py
import argparse
import json
import logging
import os
import sys

from cache import AllocationError, ConfigurationError, Geometry
from simulator import TraceSimulator
from traces import TraceParseError
from visualize import plot_outcomes, plot_set_occupancy
from workload import PATTERNS, WorkloadGenerator

LOGGER = logging.getLogger("csim")

USAGE = "%(prog)s [-hv] -s <s> -E <E> -b <b> -t <tracefile>"
CONFIG_SECTIONS = ("cache", "output", "workload")


def load_config(path):
    try:
        with open(path, "r", encoding="utf-8") as f:
            cfg = json.load(f)
    except UnicodeDecodeError as exc:
        raise ConfigurationError(f"{path}: {exc}") from exc
    if not isinstance(cfg, dict):
        raise ConfigurationError(f"{path}: top-level JSON value must be an object")
    for section in CONFIG_SECTIONS:
        if not isinstance(cfg.get(section, {}), dict):
            raise ConfigurationError(f"{path}: \"{section}\" must be a JSON object")
    return cfg


def build_parser():
    parser = argparse.ArgumentParser(
        prog="csim",
        usage=USAGE,
        description="Replay a valgrind memory trace through a set-associative LRU cache.",
    )
    parser.add_argument("-v", action="store_true", dest="verbose",
                        help="Optional verbose flag that displays trace info")
    parser.add_argument("-s", type=int, dest="s", metavar="<s>",
                        help="Number of set index bits (S = 2^s is the number of sets)")
    parser.add_argument("-E", type=int, dest="E", metavar="<E>",
                        help="Associativity (number of lines per set)")
    parser.add_argument("-b", type=int, dest="b", metavar="<b>",
                        help="Number of block bits (B = 2^b is the block size)")
    parser.add_argument("-t", dest="trace", metavar="<tracefile>",
                        help="Name of the valgrind trace to replay")
    parser.add_argument("-c", "--config", metavar="<json>",
                        help="JSON file with defaults for the options above")
    parser.add_argument("--strict", action="store_true", default=None,
                        help="Abort on the first malformed trace line instead of skipping it")
    parser.add_argument("--results", metavar="<path>",
                        help="Write the run summary as JSON")
    parser.add_argument("--plot", metavar="<dir>",
                        help="Write outcome and set occupancy plots to this directory")
    parser.add_argument("--generate", metavar="<path>",
                        help="Write a synthetic trace to <path> instead of simulating")
    parser.add_argument("--pattern", choices=PATTERNS,
                        help="Access pattern for --generate")
    parser.add_argument("--requests", type=int,
                        help="Number of records for --generate")
    parser.add_argument("--seed", type=int,
                        help="Random seed for --generate")
    parser.add_argument("--log-level", default="WARNING",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        help="Logging verbosity (diagnostics go to stderr)")
    return parser


def resolve_options(args, cfg):
    """Merge command-line flags over the config file; flags win."""
    cache_cfg = cfg.get("cache", {})
    output_cfg = cfg.get("output", {})

    def pick(flag, fallback):
        return flag if flag is not None else fallback

    return {
        "s": pick(args.s, cache_cfg.get("s")),
        "E": pick(args.E, cache_cfg.get("E")),
        "b": pick(args.b, cache_cfg.get("b")),
        "trace": pick(args.trace, cfg.get("trace")),
        "verbose": args.verbose or bool(cfg.get("verbose", False)),
        "strict": pick(args.strict, bool(cfg.get("strict", False))),
        "results": pick(args.results, output_cfg.get("results")),
        "plot_dir": pick(args.plot, output_cfg.get("plot_dir")),
    }


def make_geometry(opts):
    missing = [name for name in ("s", "E", "b") if opts[name] is None]
    if missing:
        raise ConfigurationError("missing required option(s): " + ", ".join("-" + m for m in missing))
    return Geometry(opts["s"], opts["E"], opts["b"])


def generate(args, cfg):
    workload_cfg = dict(cfg.get("workload", {}))
    if args.pattern is not None:
        workload_cfg["access_pattern"] = args.pattern
    if args.requests is not None:
        workload_cfg["num_requests"] = args.requests
    if args.seed is not None:
        workload_cfg["random_seed"] = args.seed
    if args.b is not None:
        workload_cfg["block_size"] = 1 << args.b
    try:
        generator = WorkloadGenerator.from_config(workload_cfg)
    except ValueError as exc:
        raise ConfigurationError(f"workload: {exc}") from exc
    path = generator.write(args.generate)
    print(f"wrote {generator.num_requests} records to {path}")


def simulate(opts):
    geometry = make_geometry(opts)
    if opts["trace"] is None:
        raise ConfigurationError("missing required option: -t <tracefile>")
    sim = TraceSimulator(geometry, verbose=opts["verbose"], strict=opts["strict"])
    summary = sim.run(opts["trace"])
    print(sim.stats.summary_line())

    if opts["results"]:
        LOGGER.info("results saved to %s", sim.save_results(summary, opts["results"]))
    if opts["plot_dir"]:
        plot_outcomes(summary, os.path.join(opts["plot_dir"], "outcomes.png"))
        plot_set_occupancy(sim.cache.occupancy(), geometry.E,
                           os.path.join(opts["plot_dir"], "set_occupancy.png"))
        LOGGER.info("plots saved in %s", opts["plot_dir"])
    return summary


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level),
                        format="%(levelname)s %(name)s: %(message)s")
    try:
        cfg = load_config(args.config) if args.config else {}
        if args.generate:
            generate(args, cfg)
        else:
            simulate(resolve_options(args, cfg))
    except (ConfigurationError, AllocationError, TraceParseError, json.JSONDecodeError, OSError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())

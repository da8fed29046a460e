# visualize.py
import os

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402


def _ensure_dir(outpath):
    directory = os.path.dirname(outpath)
    if directory:
        os.makedirs(directory, exist_ok=True)


def plot_outcomes(summary, outpath):
    _ensure_dir(outpath)
    labels = ["Hits", "Misses", "Evictions"]
    counts = [summary["hits"], summary["misses"], summary["evictions"]]
    plt.figure(figsize=(5, 4))
    plt.bar(labels, counts, color=["tab:green", "tab:orange", "tab:red"])
    geometry = summary["geometry"]
    plt.title(f"s={geometry['s']} E={geometry['E']} b={geometry['b']} (hit rate {summary['hit_rate']:.1%})")
    plt.ylabel("Count")
    plt.grid(True, axis="y")
    plt.tight_layout()
    plt.savefig(outpath)
    plt.close()
    return outpath


def plot_set_occupancy(occupancy, associativity, outpath):
    """Valid lines per set at the end of the run."""
    _ensure_dir(outpath)
    plt.figure(figsize=(8, 4))
    plt.bar(range(len(occupancy)), occupancy, width=1.0)
    plt.axhline(associativity, color="tab:red", linestyle="--", linewidth=0.8)
    plt.title("Set Occupancy")
    plt.xlabel("Set Index")
    plt.ylabel("Valid Lines")
    plt.ylim(0, associativity + 0.5)
    plt.tight_layout()
    plt.savefig(outpath)
    plt.close()
    return outpath

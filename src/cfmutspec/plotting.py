from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Sequence

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402
import numpy as np  # noqa: E402

from .lengths import LengthBin  # noqa: E402
from .models import CATEGORIES  # noqa: E402
from .spectrum import MUTATION_TYPES, OVERLAP_TYPES, SBS96_CHANNELS  # noqa: E402

logger = logging.getLogger(__name__)

# Conventional SBS colours, one per substitution type.
_MUTATION_COLOURS = ["#1EBFF0", "#050708", "#E62725", "#CBCACB", "#A1CF64", "#EDC8C5"]
_OVERLAP_HATCHES = {"CO_MUT": "", "SO_MUT": "///", "DO": "..."}


def plot_sbs96_spectrum(
    *,
    matrix: np.ndarray,
    out_png: str | Path,
    normalized: bool = True,
    title: str = "Trinucleotide profile",
) -> None:
    """Stacked SBS96 bar chart; stacks are the CO_MUT / SO_MUT / DO strata.

    Parameters
    ----------
    matrix:
        (96, 3) values in ``SBS96_CHANNELS`` x ``OVERLAP_TYPES`` order.
    normalized:
        Values are fractions (y axis shown as percent).
    """
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    if matrix.shape != (len(SBS96_CHANNELS), len(OVERLAP_TYPES)):
        raise ValueError(f"matrix must have shape (96, 3), got {matrix.shape}")

    values = matrix * 100.0 if normalized else matrix
    xs = np.arange(len(SBS96_CHANNELS))
    colours = [_MUTATION_COLOURS[i // 16] for i in range(len(SBS96_CHANNELS))]

    fig, ax = plt.subplots(figsize=(16, 4))
    bottom = np.zeros(len(SBS96_CHANNELS))
    for j, otype in enumerate(OVERLAP_TYPES):
        ax.bar(
            xs,
            values[:, j],
            bottom=bottom,
            color=colours,
            hatch=_OVERLAP_HATCHES.get(otype, ""),
            edgecolor="white",
            linewidth=0.3,
            label=otype,
        )
        bottom += values[:, j]

    for i, mut in enumerate(MUTATION_TYPES):
        ax.text(i * 16 + 7.5, 1.01, mut, transform=ax.get_xaxis_transform(), ha="center", va="bottom")

    ax.set_xticks(xs)
    ax.set_xticklabels(list(SBS96_CHANNELS), rotation=90, fontsize=5, family="monospace")
    ax.set_xlim(-0.6, len(SBS96_CHANNELS) - 0.4)
    ax.set_ylabel("Percentage of single base substitutions" if normalized else "Count")
    ax.set_title(title, pad=18)
    ax.legend(title="Overlap type", fontsize=7, title_fontsize=7, loc="upper right")
    fig.tight_layout()
    fig.savefig(out_png, dpi=160)
    plt.close(fig)


def plot_support_counts(
    *,
    consensus_categories: Dict[str, int],
    out_png: str | Path,
    title: str = "Consensus category per locus",
) -> None:
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    labels = [c for c in CATEGORIES if c in consensus_categories]
    values = [int(consensus_categories[c]) for c in labels]

    plt.figure()
    plt.bar(labels, values)
    plt.ylabel("Loci")
    plt.title(title)
    plt.xticks(rotation=15, ha="right")
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()


def plot_length_profile(
    *,
    bins: Sequence[LengthBin],
    out_png: str | Path,
    title: str = "Fragment length: mutant vs comparison",
) -> None:
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    plt.figure()
    for flag, label in ((False, "Reference fragment"), (True, "Mutation fragment")):
        sel: List[LengthBin] = [b for b in bins if b.mutant is flag]
        if not sel:
            continue
        plt.plot([b.size_rounded for b in sel], [b.proportion for b in sel], label=label)
    plt.xlabel("Fragment size (bp, 5 bp bins)")
    plt.ylabel("Proportion")
    plt.title(title)
    plt.legend()
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()

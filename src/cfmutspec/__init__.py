"""cfMutSpec: fragment-level consensus calling and SBS96 spectra for cfDNA.

Public API is intentionally small; most users should use the CLI:

    cfmutspec call --fragments ... --loci ... --ref ... --outdir ...

"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"

from __future__ import annotations

import datetime as _dt
import logging
from pathlib import Path
from typing import Any, Dict, List, Tuple

from jinja2 import Template

logger = logging.getLogger(__name__)


_REPORT_TEMPLATE = Template(
    """<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>cfMutSpec Report</title>
  <style>
    body { font-family: Arial, Helvetica, sans-serif; margin: 24px; }
    code, pre { background: #f6f8fa; padding: 2px 4px; border-radius: 4px; }
    h1, h2, h3 { margin-top: 1.2em; }
    table { border-collapse: collapse; margin-top: 0.6em; }
    th, td { border: 1px solid #ddd; padding: 8px; }
    th { background: #f2f2f2; text-align: left; }
    .grid { display: grid; grid-template-columns: 1fr 1fr; gap: 16px; }
    .card { border: 1px solid #ddd; border-radius: 8px; padding: 12px; }
    .small { color: #666; font-size: 0.9em; }
    img { max-width: 100%; height: auto; border: 1px solid #eee; border-radius: 6px; }
  </style>
</head>
<body>

<h1>cfMutSpec Report</h1>
<p class="small">Generated: {{ generated_at }}</p>

<h2>Run summary</h2>
<div class="grid">
  <div class="card">
    <h3>Inputs</h3>
    <table>
      <tr><th>Fragments</th><td><code>{{ run.fragments_path }}</code></td></tr>
      <tr><th>Loci</th><td><code>{{ run.loci_path }}</code></td></tr>
      <tr><th>Reference</th><td><code>{{ run.ref_fa }}</code></td></tr>
    </table>
  </div>
  <div class="card">
    <h3>Settings</h3>
    <table>
      <tr><th>Seed</th><td>{{ run.deterministic_seed }}</td></tr>
      <tr><th>Normalize counts</th><td>{{ run.normalize_counts }}</td></tr>
      <tr><th>Exclude if present</th><td>{{ run.exclude_if_type_present|join(", ") or "-" }}</td></tr>
      <tr><th>Retain if present</th><td>{{ run.retain_if_type_present|join(", ") or "-" }}</td></tr>
      <tr><th>Removed support types</th><td>{{ run.remove_type|join(", ") or "-" }}</td></tr>
      <tr><th>Chromosomes</th><td>{{ run.chromosomes|join(", ") if run.chromosomes else "all" }}</td></tr>
      <tr><th>Length comparison</th><td>{{ run.length_comparison }}</td></tr>
    </table>
  </div>
</div>

<h2>Loci</h2>
<table>
  <tr><th>Loci kept</th><td>{{ locus_stats.loci_kept }}</td></tr>
  <tr><th>Records total</th><td>{{ locus_stats.records_total }}</td></tr>
  <tr><th>Skipped FILTER</th><td>{{ locus_stats.loci_skipped_filter }}</td></tr>
  <tr><th>Skipped non-SNV</th><td>{{ locus_stats.loci_skipped_non_snv }}</td></tr>
  <tr><th>Skipped duplicate</th><td>{{ locus_stats.loci_skipped_duplicate }}</td></tr>
  <tr><th>Skipped chromosome</th><td>{{ locus_stats.loci_skipped_chrom }}</td></tr>
</table>

<h2>Fragments and consensus</h2>
<table>
  <tr><th>Fragments loaded</th><td>{{ counts.fragments_total }}</td></tr>
  <tr><th>Duplicate ids dropped</th><td>{{ counts.fragments_duplicate }}</td></tr>
  <tr><th>Outer fragments</th><td>{{ counts.fragments_outer }}</td></tr>
  <tr><th>Annotations not in locus table</th><td>{{ counts.annotations_unmatched }}</td></tr>
  <tr><th>Annotations with invalid bases</th><td>{{ counts.annotations_invalid_base }}</td></tr>
  <tr><th>Loci with fragments</th><td>{{ counts.loci_with_fragments }}</td></tr>
  <tr><th>Loci with a consensus</th><td>{{ counts.loci_consensus }}</td></tr>
  <tr><th>Loci without mutant support</th><td>{{ counts.loci_no_support }}</td></tr>
  <tr><th>Ambiguous reference context</th><td>{{ counts.records_ambiguous_base }}</td></tr>
  <tr><th>Reference mismatch</th><td>{{ counts.records_reference_mismatch }}</td></tr>
  <tr><th>Records dropped by removed types</th><td>{{ counts.spectrum_records_removed }}</td></tr>
  <tr><th>Records in spectrum</th><td>{{ counts.spectrum_records_counted }}</td></tr>
</table>

<h2>End motifs</h2>
<table>
  <tr><th>Motif</th><td>{{ run.end_motifs.motif_type }}{{ run.end_motifs.motif_length }}{% if run.end_motifs.by_status %} (reference vs mutant fragments){% endif %}</td></tr>
  {% for name, value in run.end_motifs.stats|dictsort %}
  <tr><th>{{ name }}</th><td>{{ value }}</td></tr>
  {% endfor %}
</table>

<h2>Top channels</h2>
{% if top_channels %}
<table>
  <tr><th>SBS96</th><th>Overlap type</th><th>Value</th></tr>
  {% for channel, otype, value in top_channels %}
  <tr><td><code>{{ channel }}</code></td><td>{{ otype }}</td><td>{{ "%.4g"|format(value) }}</td></tr>
  {% endfor %}
</table>
{% else %}
<p>No substitutions were counted.</p>
{% endif %}

<h2>Plots</h2>

<div class="card">
  <h3>Trinucleotide profile</h3>
  <img src="{{ plots.sbs96 }}" alt="SBS96 spectrum">
</div>

<div class="grid" style="margin-top:16px;">
  <div class="card">
    <h3>Consensus categories</h3>
    <img src="{{ plots.categories }}" alt="consensus categories">
  </div>
  <div class="card">
    <h3>Fragment length</h3>
    <img src="{{ plots.lengths }}" alt="fragment length profile">
    <p class="small">Median mutant size: {{ lengths.mutant_median_size }};
       comparison: {{ lengths.comparison_median_size }}</p>
  </div>
</div>

<h2>Outputs</h2>
<ul>
  {% for name, path in run.outputs|dictsort %}
  <li><code>{{ path }}</code> ({{ name }})</li>
  {% endfor %}
  <li><code>summary.json</code> (machine-readable summary)</li>
</ul>

<h2>Interpretation notes</h2>
<ul>
  <li>Other-base support is counted in the concordant or single-read stratum matching its read-pair topology.</li>
  <li>Loci supported only by reference fragments have no consensus and do not enter the spectrum.</li>
  <li>Random choices are seeded per locus; rerunning with the same seed reproduces every table.</li>
</ul>

<hr>
<p class="small">cfMutSpec {{ version }}</p>
</body>
</html>"""
)


def top_channels(spectrum: Dict[str, List[Any]], n: int = 10) -> List[Tuple[str, str, float]]:
    """The ``n`` largest non-zero (channel, overlap type, value) entries."""
    triples = [
        (c, o, float(v))
        for c, o, v in zip(spectrum.get("channels", []), spectrum.get("overlap_types", []), spectrum.get("values", []))
        if v
    ]
    triples.sort(key=lambda t: -t[2])
    return triples[:n]


def render_report(
    *,
    outdir: str | Path,
    version: str,
    run: Dict[str, Any],
    plots: Dict[str, str],
) -> Path:
    outdir = Path(outdir)
    outdir.mkdir(parents=True, exist_ok=True)

    html = _REPORT_TEMPLATE.render(
        generated_at=_dt.datetime.now().isoformat(timespec="seconds"),
        version=version,
        run=run,
        counts=run.get("counts", {}),
        locus_stats=run.get("locus_stats", {}),
        lengths=run.get("lengths", {}),
        top_channels=top_channels(run.get("spectrum", {})),
        plots=plots,
    )

    out_path = outdir / "report.html"
    out_path.write_text(html, encoding="utf-8")
    logger.debug("Report rendered to %s", out_path)
    return out_path

# File: genomepolisher/report.py
# Location: genomepolisher/genomepolisher/report.py

"""
Polishing run summary.

Builds a per-stage summary table (status, duration, output, assembly
statistics) with pandas and writes it as TSV, optionally rendering an HTML
page from the packaged Jinja2 template.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

import pandas as pd
from Bio import SeqIO
from Bio.SeqUtils import gc_fraction
from jinja2 import Environment, FileSystemLoader, select_autoescape

from .version import __version__

logger = logging.getLogger("genomepolisher")

SUMMARY_COLUMNS = [
    "stage",
    "status",
    "duration_s",
    "output",
    "contigs",
    "total_length",
    "longest_contig",
    "n50",
    "gc_percent",
]


def read_fasta(path: Path) -> Iterator[Tuple[str, str]]:
    """Yield ``(record id, sequence)`` pairs from a FASTA file."""
    with open(path, "r", encoding="utf-8") as handle:
        for record in SeqIO.parse(handle, "fasta"):
            yield record.id, str(record.seq)


def assembly_stats(path: Path) -> Dict[str, Any]:
    """Compute contig count, total length, longest contig, N50 and GC content.

    Parameters
    ----------
    path : Path
        FASTA file

    Returns
    -------
    dict
        Statistics keyed like the summary columns; empty assemblies yield zeros
    """
    lengths = []
    gc = 0.0
    for _, seq in read_fasta(path):
        lengths.append(len(seq))
        if seq:
            gc += gc_fraction(seq, ambiguous="ignore") * len(seq)

    if not lengths:
        return {"contigs": 0, "total_length": 0, "longest_contig": 0, "n50": 0, "gc_percent": 0.0}

    sizes = pd.Series(lengths).sort_values(ascending=False, ignore_index=True)
    total = int(sizes.sum())
    n50 = int(sizes[sizes.cumsum() >= total / 2].iloc[0])
    return {
        "contigs": int(len(sizes)),
        "total_length": total,
        "longest_contig": int(sizes.iloc[0]),
        "n50": n50,
        "gc_percent": round(100.0 * gc / total, 2) if total else 0.0,
    }


def build_summary_table(context) -> pd.DataFrame:
    """Collect one row per recorded stage, plus the input contigs.

    Parameters
    ----------
    context : PipelineContext
        Context after the polishing stages ran

    Returns
    -------
    pd.DataFrame
        Table with SUMMARY_COLUMNS
    """
    rows = []
    entries: List[Tuple[str, str, float, Optional[Path]]] = [
        ("input", "input", 0.0, Path(context.config.contigs))
    ]
    for record in context.stage_records.values():
        entries.append((record.name, record.status, record.duration, record.output_path))

    for stage, status, duration, output in entries:
        row: Dict[str, Any] = {
            "stage": stage,
            "status": status,
            "duration_s": round(duration, 1),
            "output": str(output) if output else "",
        }
        if output is not None and Path(output).is_file() and str(output).endswith(
            (".fasta", ".fa", ".fna")
        ):
            try:
                row.update(assembly_stats(Path(output)))
            except (OSError, UnicodeDecodeError) as e:
                logger.warning(f"Could not compute assembly statistics for {output}: {e}")
        rows.append(row)

    return pd.DataFrame(rows, columns=SUMMARY_COLUMNS)


def write_summary_tsv(df: pd.DataFrame, output_path: Path) -> Path:
    """Write the summary table as tab-separated values."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(output_path, sep="\t", index=False, na_rep="")
    logger.info(f"Polishing summary written to {output_path}")
    return output_path


def generate_html_report(df: pd.DataFrame, context, output_path: Path) -> Path:
    """
    Render the summary table and run parameters as an HTML page.

    Parameters
    ----------
    df : pd.DataFrame
        Summary table from build_summary_table
    context : PipelineContext
        Context providing the run configuration and tool versions
    output_path : Path
        HTML file to write

    Returns
    -------
    Path
        The written report
    """
    templates_dir = Path(__file__).parent / "templates"
    env = Environment(
        loader=FileSystemLoader(str(templates_dir)),
        autoescape=select_autoescape(["html"]),
    )
    template = env.get_template("polishing_report.html")

    html = template.render(
        prefix=context.config.prefix,
        version=__version__,
        generation_date=datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        parameters=context.config.to_dict(),
        tool_versions=context.tool_versions,
        columns=list(df.columns),
        rows=df.fillna("").to_dict(orient="records"),
        final_assembly=str(context.final_assembly) if context.final_assembly else "",
    )

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(html, encoding="utf-8")
    logger.info(f"HTML report written to {output_path}")
    return output_path

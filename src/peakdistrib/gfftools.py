from __future__ import annotations
from pathlib import Path
import gzip
import logging
import os
import sys
from typing import Dict, Iterable, List, TextIO

from .errors import IOFailure, MalformedInput
from .peakdistribClasses import (
    AnnotatedFeature,
    ClassificationTable,
    EXON,
    INTRON,
    Peak,
    TSS,
    TTS,
)

# GFF2 feature type column for each derived kind; windows share an "ext" type
GFF_TYPES = {EXON: "exon", INTRON: "intron", TSS: "TSS", TTS: "TTS"}
GFF_SOURCE = "peakdistrib"


def _open_text_auto(path: str | Path, mode: str = "rt") -> TextIO:
    p = Path(path)
    try:
        if p.suffix.lower() == ".gz":
            return gzip.open(p, mode, encoding="utf-8", errors="replace")
        return open(p, mode, encoding="utf-8", errors="replace")
    except OSError as e:
        raise IOFailure(f"could not open {p}: {e}") from e


def _skip_line(line: str) -> bool:
    return not line.strip() or line.startswith(("#", "track", "browser"))


def _parse_attrs(attr_field: str) -> Dict[str, str]:
    """Parse GFF2 `key "value";` pairs (GFF3 `key=value` is accepted too)."""
    out: Dict[str, str] = {}
    for kv in attr_field.strip().split(";"):
        kv = kv.strip()
        if not kv:
            continue
        if " " in kv:
            k, v = kv.split(None, 1)
        elif "=" in kv:
            k, v = kv.split("=", 1)
        else:
            continue
        out[k] = v.strip().strip('"')
    return out


def gff_type(kind: str) -> str:
    if kind in GFF_TYPES:
        return GFF_TYPES[kind]
    if kind.startswith(TSS):
        return "TSSext"
    if kind.startswith(TTS):
        return "TTSext"
    return kind


def read_peaks(path: str | Path, logger: logging.Logger | None = None) -> List[Peak]:
    """Read a BED3+ file; columns past the third are ignored."""
    peaks: List[Peak] = []
    with _open_text_auto(path) as fh:
        try:
            for lineno, line in enumerate(fh, 1):
                if _skip_line(line):
                    continue
                cols = line.rstrip("\n").split("\t")
                if len(cols) < 3:
                    cols = line.split()
                if len(cols) < 3:
                    raise MalformedInput("BED line needs at least 3 columns", record=f"{path}:{lineno}")
                chrom, start_s, end_s = cols[0], cols[1], cols[2]
                try:
                    start = int(start_s)
                    end = int(end_s)
                except ValueError:
                    raise MalformedInput(
                        f"non-numeric coordinate {start_s!r}/{end_s!r}", record=f"{path}:{lineno}"
                    ) from None
                if start < 0 or start >= end:
                    raise MalformedInput(f"start >= end ({start} >= {end})", record=f"{path}:{lineno}")
                peaks.append(Peak(chrom, start, end))
        except (OSError, EOFError) as e:
            raise IOFailure(f"could not read {path}: {e}") from e

    if logger:
        logger.info(f"Peaks loaded: {len(peaks)} from {path}")
    return peaks


def read_exons(path: str | Path, logger: logging.Logger | None = None) -> List[AnnotatedFeature]:
    """
    Read exon rows of a GTF/GFF2 annotation.
    Coordinates are converted from 1-based inclusive to BED convention.
    """
    exons: List[AnnotatedFeature] = []
    no_transcript = 0
    with _open_text_auto(path) as fh:
        try:
            for lineno, line in enumerate(fh, 1):
                if _skip_line(line):
                    continue
                cols = line.rstrip("\n").split("\t")
                if len(cols) < 9:
                    raise MalformedInput(
                        f"GTF line has {len(cols)} columns, expected 9", record=f"{path}:{lineno}"
                    )
                chrom, _src, feature, start_s, end_s, _score, strand, _phase, attrs = cols[:9]
                if feature != "exon":
                    continue
                try:
                    start = int(start_s)
                    end = int(end_s)
                except ValueError:
                    raise MalformedInput(
                        f"non-numeric coordinate {start_s!r}/{end_s!r}", record=f"{path}:{lineno}"
                    ) from None
                if start < 1 or start > end:
                    raise MalformedInput(f"bad exon coordinates {start}-{end}", record=f"{path}:{lineno}")
                A = _parse_attrs(attrs)
                gene_id = A.get("gene_id")
                if not gene_id:
                    raise MalformedInput("exon without gene_id attribute", record=f"{path}:{lineno}")
                transcript_id = A.get("transcript_id") or None
                if transcript_id is None:
                    no_transcript += 1
                exons.append(
                    AnnotatedFeature(
                        chrom,
                        start - 1,
                        end,
                        strand if strand in ("+", "-") else ".",
                        gene_id=gene_id,
                        kind=EXON,
                        transcript_id=transcript_id,
                    )
                )
        except (OSError, EOFError) as e:
            raise IOFailure(f"could not read {path}: {e}") from e

    if logger:
        logger.info(f"Annotation loaded: {len(exons)} exons from {path}")
        if no_transcript:
            logger.warning(f"{no_transcript} exons have no transcript_id; they give no introns")
        if logger.isEnabledFor(logging.DEBUG):
            for e in exons[:5]:
                logger.debug(f"  Example exon: {e} ({e.strand}) gene={e.gene_id} tr={e.transcript_id}")
    return exons


def format_gff(feature: AnnotatedFeature) -> str:
    attrs = f'gene_id "{feature.gene_id}";'
    if feature.trlist:
        attrs += f' trlist "{",".join(feature.trlist)},";'
    elif feature.transcript_id:
        attrs += f' transcript_id "{feature.transcript_id}";'
    return "\t".join([
        feature.chrom,
        GFF_SOURCE,
        gff_type(feature.kind),
        str(feature.start + 1),
        str(feature.end),
        ".",
        feature.strand,
        ".",
        attrs,
    ]) + "\n"


def _partial_path(out: Path) -> Path:
    # keep the real suffix last so .gz output is still compressed
    return out.with_name(out.stem + ".partial" + out.suffix)


def _write_gff_lines(features: Iterable[AnnotatedFeature], path: Path) -> int:
    count = 0
    with _open_text_auto(path, "wt") as fout:
        for f in features:
            fout.write(format_gff(f))
            count += 1
    return count


def write_gff_set(outputs: Dict[Path, Iterable[AnnotatedFeature]]) -> Dict[Path, int]:
    """
    Write several GFF2 files (1-based inclusive) as one unit.
    Every file goes to a .partial sibling first; none is moved into place
    unless all were written, and on failure nothing of this set remains.
    Returns the row count per path.
    """
    outputs = {Path(p): feats for p, feats in outputs.items()}
    counts: Dict[Path, int] = {}
    placed: List[Path] = []

    def _discard():
        for out in outputs:
            _partial_path(out).unlink(missing_ok=True)
        for out in placed:
            out.unlink(missing_ok=True)

    try:
        for out in outputs:
            if out.is_dir():
                raise IOFailure(f"could not write {out}: is a directory")
        for out, feats in outputs.items():
            counts[out] = _write_gff_lines(feats, _partial_path(out))
        for out in outputs:
            os.replace(_partial_path(out), out)
            placed.append(out)
    except (OSError, EOFError) as e:
        _discard()
        raise IOFailure(f"could not write GFF files: {e}") from e
    except IOFailure:
        _discard()
        raise
    return counts


def write_gff(features: Iterable[AnnotatedFeature], out_path: str | Path) -> int:
    """Write features as GFF2; returns the row count."""
    out = Path(out_path)
    return write_gff_set({out: features})[out]


def write_table(table: ClassificationTable, out_path: str | Path) -> int:
    """
    Write the matrix to out_path ('-' for stdout).
    Files are written to a .partial sibling and renamed once complete.
    """
    if str(out_path) == "-":
        return table.write(sys.stdout)

    out = Path(out_path)
    tmp = _partial_path(out)
    try:
        out.parent.mkdir(parents=True, exist_ok=True)
        with _open_text_auto(tmp, "wt") as fh:
            n = table.write(fh)
        os.replace(tmp, out)
    except (OSError, EOFError) as e:
        tmp.unlink(missing_ok=True)
        raise IOFailure(f"could not write {out}: {e}") from e
    return n

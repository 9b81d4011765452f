from __future__ import annotations
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple
import logging

from .errors import MalformedInput, UnsortedInput
from .peakdistribClasses import (
    AnnotatedFeature,
    INTRON,
    TSS,
    TTS,
    window_kind,
)


def _feature_sort_key(f: AnnotatedFeature):
    return (f.chrom, f.start, f.end, f.gene_id)


def sort_features(features: Iterable[AnnotatedFeature]) -> List[AnnotatedFeature]:
    """Coordinate order (chrom, start, end) used by the overlap sweep."""
    return sorted(features, key=_feature_sort_key)


def sort_exons_by_transcript(exons: Iterable[AnnotatedFeature]) -> List[AnnotatedFeature]:
    """Order exons by transcript, then coordinate; the precondition of derive_introns."""
    return sorted(
        (e for e in exons if e.transcript_id),
        key=lambda e: (e.transcript_id, e.chrom, e.start, e.end),
    )


def derive_introns(
    exons: Sequence[AnnotatedFeature],
    logger: logging.Logger | None = None,
) -> List[AnnotatedFeature]:
    """
    Introns are the gaps between consecutive exons of a transcript.

    Exons must come grouped by transcript and sorted by start within each
    transcript (see sort_exons_by_transcript). Exons without a transcript id
    are ignored. Abutting or overlapping consecutive exons leave no intron.
    """
    introns: List[AnnotatedFeature] = []
    finished: Set[str] = set()
    prev: Optional[AnnotatedFeature] = None
    # furthest exon end seen so far in the current transcript
    reach = 0

    for ex in exons:
        tr = ex.transcript_id
        if not tr:
            continue
        if prev is None or prev.transcript_id != tr:
            if tr in finished:
                raise UnsortedInput(
                    f"exons of transcript {tr} are not contiguous", record=str(ex)
                )
            if prev is not None:
                finished.add(prev.transcript_id)
            prev = ex
            reach = ex.end
            continue

        if ex.chrom != prev.chrom:
            raise MalformedInput(
                f"transcript {tr} has exons on {prev.chrom} and {ex.chrom}", record=str(ex)
            )
        if (ex.start, ex.end) < (prev.start, prev.end):
            raise UnsortedInput(
                f"exons of transcript {tr} are not sorted by coordinate", record=str(ex)
            )
        if reach < ex.start:
            introns.append(
                AnnotatedFeature(
                    ex.chrom,
                    reach,
                    ex.start,
                    ex.strand,
                    gene_id=ex.gene_id,
                    kind=INTRON,
                    transcript_id=tr,
                )
            )
        reach = max(reach, ex.end)
        prev = ex

    if logger:
        logger.info(f"Derived {len(introns)} introns")
    return introns


def _terminal_sites(
    exons: Iterable[AnnotatedFeature],
    kind: str,
) -> List[AnnotatedFeature]:
    # 5' end (TSS) is the lowest base on +, the highest on -; TTS is the reverse
    five_prime = kind == TSS

    # per (gene, chrom, strand) -> per transcript: extreme base
    per_tr: Dict[Tuple[str, str, str], Dict[Optional[str], int]] = defaultdict(dict)
    for ex in exons:
        minus = ex.strand == "-"
        use_low = five_prime != minus
        base = ex.start if use_low else ex.end - 1
        bases = per_tr[(ex.gene_id, ex.chrom, ex.strand)]
        cur = bases.get(ex.transcript_id)
        if cur is None or (base < cur if use_low else base > cur):
            bases[ex.transcript_id] = base

    sites: List[AnnotatedFeature] = []
    for (gene_id, chrom, strand), bases in per_tr.items():
        use_low = five_prime != (strand == "-")
        site = min(bases.values()) if use_low else max(bases.values())
        trlist = tuple(sorted(tr for tr, b in bases.items() if b == site and tr))
        sites.append(
            AnnotatedFeature(
                chrom, site, site + 1, strand,
                gene_id=gene_id, kind=kind, trlist=trlist,
            )
        )
    return sort_features(sites)


def derive_tss(exons: Iterable[AnnotatedFeature], logger: logging.Logger | None = None) -> List[AnnotatedFeature]:
    """Most 5' base of every gene, one feature per (chrom, base, strand, gene)."""
    sites = _terminal_sites(exons, TSS)
    if logger:
        logger.info(f"Derived {len(sites)} TSS")
    return sites


def derive_tts(exons: Iterable[AnnotatedFeature], logger: logging.Logger | None = None) -> List[AnnotatedFeature]:
    """Most 3' base of every gene."""
    sites = _terminal_sites(exons, TTS)
    if logger:
        logger.info(f"Derived {len(sites)} TTS")
    return sites


def expand_window(points: Iterable[AnnotatedFeature], radius: int) -> List[AnnotatedFeature]:
    """Widen each point by radius bases on both sides; starts are clamped at 0."""
    if radius < 0:
        raise ValueError(f"window radius must be >= 0, got {radius}")
    windows = []
    for p in points:
        windows.append(
            AnnotatedFeature(
                p.chrom,
                max(0, p.start - radius),
                p.end + radius,
                p.strand,
                gene_id=p.gene_id,
                kind=window_kind(p.kind, radius),
                trlist=p.trlist,
            )
        )
    return sort_features(windows)

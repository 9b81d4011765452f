from __future__ import annotations
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple
import logging
import threading

from .errors import ClassificationCancelled, UnsortedInput
from .peakdistribClasses import (
    AnnotatedFeature,
    GeneSet,
    GenomicInterval,
    IntervalKey,
    NO_MATCH,
)

OVERLAP = "overlap"
CONTAINMENT = "containment"


def _overlaps(q: GenomicInterval, r: AnnotatedFeature) -> bool:
    return q.overlaps(r)


def _contained(q: GenomicInterval, r: AnnotatedFeature) -> bool:
    return r.contains(q)


PREDICATES: Dict[str, Callable[[GenomicInterval, AnnotatedFeature], bool]] = {
    OVERLAP: _overlaps,
    CONTAINMENT: _contained,
}


def _check_cancel(cancel: Optional[threading.Event], q: GenomicInterval):
    if cancel is not None and cancel.is_set():
        raise ClassificationCancelled("overlap sweep cancelled", record=str(q))


def _chrom_blocks(queries: Iterable[GenomicInterval]) -> Iterator[Tuple[str, List[GenomicInterval]]]:
    """Split sorted queries into per-chromosome runs, checking the sort order."""
    prev: Optional[GenomicInterval] = None
    block: List[GenomicInterval] = []
    for q in queries:
        if prev is not None and q.key < prev.key:
            raise UnsortedInput(
                f"queries not sorted by (chrom, start, end): {prev} before {q}", record=str(q)
            )
        if prev is not None and q.chrom != prev.chrom:
            yield prev.chrom, block
            block = []
        block.append(q)
        prev = q
    if block:
        yield block[0].chrom, block


def _refs_by_chrom(references: Iterable[AnnotatedFeature]) -> Dict[str, List[AnnotatedFeature]]:
    out: Dict[str, List[AnnotatedFeature]] = {}
    for r in references:
        out.setdefault(r.chrom, []).append(r)
    return out


def _is_start_sorted(refs: Sequence[AnnotatedFeature]) -> bool:
    return all(refs[i].start <= refs[i + 1].start for i in range(len(refs) - 1))


def _sweep(
    queries: Sequence[GenomicInterval],
    refs: Sequence[AnnotatedFeature],
    test: Callable[[GenomicInterval, AnnotatedFeature], bool],
    hits: Dict[IntervalKey, Dict[str, None]],
    cancel: Optional[threading.Event],
) -> int:
    """
    Two-pointer sweep over start-sorted queries and references of one chromosome.

    active holds references that started before the current query ends and
    have not ended before it starts. Query starts never decrease, so a
    reference dropped from active cannot match any later query.
    """
    active: List[AnnotatedFeature] = []
    j = 0
    n = len(refs)
    pairs = 0
    for q in queries:
        _check_cancel(cancel, q)
        while j < n and refs[j].start < q.end:
            active.append(refs[j])
            j += 1
        if active:
            active = [r for r in active if r.end > q.start]
        genes = hits.setdefault(q.key, {})
        for r in active:
            # earlier, longer queries may have pulled in refs starting past q.end
            if test(q, r):
                genes[r.gene_id] = None
                pairs += 1
    return pairs


def _rescan(
    queries: Sequence[GenomicInterval],
    refs: Sequence[AnnotatedFeature],
    test: Callable[[GenomicInterval, AnnotatedFeature], bool],
    hits: Dict[IntervalKey, Dict[str, None]],
    cancel: Optional[threading.Event],
) -> int:
    pairs = 0
    for q in queries:
        _check_cancel(cancel, q)
        genes = hits.setdefault(q.key, {})
        for r in refs:
            if _overlaps(q, r) and test(q, r):
                genes[r.gene_id] = None
                pairs += 1
    return pairs


def overlap(
    queries: Iterable[GenomicInterval],
    references: Iterable[AnnotatedFeature],
    predicate: str = OVERLAP,
    *,
    cancel: Optional[threading.Event] = None,
    logger: logging.Logger | None = None,
) -> Dict[IntervalKey, GeneSet]:
    """
    Genes of the references matching each query.

    Parameters
    ----------
    queries : intervals sorted by (chrom, start, end); strand is ignored
    references : features; per chromosome they should be sorted by start,
        otherwise that chromosome is re-scanned query by query
    predicate : "overlap" (at least 1 bp shared) or "containment"
        (reference encloses the query)

    Returns
    -------
    dict keyed by (chrom, start, end) of every query; queries without a
    match map to NO_MATCH.
    """
    try:
        test = PREDICATES[predicate]
    except KeyError:
        raise ValueError(f"Unknown predicate: {predicate}") from None

    by_chrom = _refs_by_chrom(references)
    hits: Dict[IntervalKey, Dict[str, None]] = {}
    pairs = 0

    for chrom, block in _chrom_blocks(queries):
        refs = by_chrom.get(chrom, [])
        if _is_start_sorted(refs):
            pairs += _sweep(block, refs, test, hits, cancel)
        else:
            if logger:
                logger.warning(f"References on {chrom!r} are not sorted by start; re-scanning")
            pairs += _rescan(block, refs, test, hits, cancel)

    if logger and logger.isEnabledFor(logging.DEBUG):
        matched = sum(1 for g in hits.values() if g)
        logger.debug(
            f"overlap[{predicate}]: {len(hits)} queries, {matched} matched, {pairs} pairs"
        )

    return {k: (GeneSet.from_names(g) if g else NO_MATCH) for k, g in hits.items()}

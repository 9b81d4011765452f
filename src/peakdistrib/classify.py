from __future__ import annotations
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
import logging
import os
import threading

import psutil

from .derive import (
    derive_introns,
    derive_tss,
    derive_tts,
    expand_window,
    sort_exons_by_transcript,
    sort_features,
)
from .errors import EmptyAnnotation, IOFailure, MalformedInput, PeakDistribError
from .gfftools import read_exons, read_peaks, write_gff_set, write_table
from .overlap import CONTAINMENT, OVERLAP, overlap
from .peakdistribClasses import (
    AnnotatedFeature,
    ClassificationRow,
    ClassificationTable,
    EXON,
    GeneSet,
    GenomicInterval,
    INTRON,
    IntervalKey,
    NO_MATCH,
    TSS,
    TTS,
    category_columns,
    window_kind,
)

DEFAULT_RADII = (1000, 5000)

# category -> (reference features in coordinate order, predicate)
References = Dict[str, Tuple[List[AnnotatedFeature], str]]


def _make_logger(level: str) -> logging.Logger:
    lvl = getattr(logging, level.upper(), logging.INFO)
    logger = logging.getLogger("peakdistrib")
    # Configure once
    if not logger.handlers:
        handler = logging.StreamHandler()
        fmt = logging.Formatter("[%(asctime)s] [%(levelname)s] %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
        handler.setFormatter(fmt)
        logger.addHandler(handler)
    logger.setLevel(lvl)
    return logger


def _get_memory_usage():
    process = psutil.Process(os.getpid())
    return process.memory_info().rss / 1024 / 1024 # Current memory usage in MB


def _normalise_radii(radii: Iterable[int]) -> Tuple[int, ...]:
    given = list(radii)
    try:
        out = sorted(set(int(r) for r in given))
    except (TypeError, ValueError):
        out = []
    if not out or out[0] <= 0:
        raise MalformedInput(f"window radii must be positive integers, got {given}")
    return tuple(out)


def build_references(
    exons: Sequence[AnnotatedFeature],
    radii: Iterable[int] = DEFAULT_RADII,
    logger: logging.Logger | None = None,
) -> References:
    """Derive every reference set from the exons, keyed by output column."""
    if not exons:
        raise EmptyAnnotation("annotation has no exon rows")
    radii = _normalise_radii(radii)

    introns = derive_introns(sort_exons_by_transcript(exons), logger=logger)
    tss = derive_tss(exons, logger=logger)
    tts = derive_tts(exons, logger=logger)

    refs: References = {
        EXON: (sort_features(exons), OVERLAP),
        INTRON: (sort_features(introns), CONTAINMENT),
        TSS: (tss, OVERLAP),
    }
    for r in radii:
        refs[window_kind(TSS, r)] = (expand_window(tss, r), OVERLAP)
    refs[TTS] = (tts, OVERLAP)
    for r in radii:
        refs[window_kind(TTS, r)] = (expand_window(tts, r), OVERLAP)
    return refs


def _run_categories(
    queries: Sequence[GenomicInterval],
    references: References,
    *,
    workers: Optional[int],
    cancel: Optional[threading.Event],
    logger: logging.Logger | None,
) -> Dict[str, Dict[IntervalKey, GeneSet]]:
    results: Dict[str, Dict[IntervalKey, GeneSet]] = {}

    if workers == 1:
        for col, (refs, predicate) in references.items():
            try:
                results[col] = overlap(queries, refs, predicate, cancel=cancel, logger=logger)
            except PeakDistribError as e:
                raise e.with_category(col)
        return results

    # set on the first failure so the other sweeps stop early
    stop = cancel if cancel is not None else threading.Event()
    with ThreadPoolExecutor(max_workers=workers or len(references)) as pool:
        futures = {
            pool.submit(overlap, queries, refs, predicate, cancel=stop, logger=logger): col
            for col, (refs, predicate) in references.items()
        }
        try:
            for fut in as_completed(futures):
                col = futures[fut]
                try:
                    results[col] = fut.result()
                except PeakDistribError as e:
                    raise e.with_category(col)
        except BaseException:
            stop.set()
            for f in futures:
                f.cancel()
            raise
    return results


def merge(
    queries: Iterable[GenomicInterval],
    category_results: Dict[str, Dict[IntervalKey, GeneSet]],
    columns: Sequence[str],
) -> List[ClassificationRow]:
    """
    One row per distinct query, in query order.
    Rows are looked up by (chrom, start, end), never by position; a category
    without a result for a query reads as NO_MATCH.
    """
    rows: List[ClassificationRow] = []
    seen = set()
    for q in queries:
        if q.key in seen:
            continue
        seen.add(q.key)
        cats = {c: category_results.get(c, {}).get(q.key, NO_MATCH) for c in columns}
        rows.append(ClassificationRow(q, cats))
    return rows


def classify(
    peaks: Iterable[GenomicInterval],
    exons: Sequence[AnnotatedFeature],
    *,
    radii: Iterable[int] = DEFAULT_RADII,
    workers: Optional[int] = None,
    cancel: Optional[threading.Event] = None,
    logger: logging.Logger | None = None,
) -> ClassificationTable:
    """
    Classify peaks against exons, introns, TSS/TTS and their windows.

    workers: threads for the per-category overlaps (None = one per category,
    1 = run inline). cancel: event that stops a running classification.
    """
    radii = _normalise_radii(radii)
    columns = category_columns(radii)
    queries = sorted(peaks, key=lambda p: p.key)
    if logger and len(set(q.key for q in queries)) != len(queries):
        logger.warning("Duplicate peak coordinates found; each interval is reported once")

    references = build_references(exons, radii, logger=logger)
    if logger:
        logger.info(
            f"{len(queries)} peaks x {len(references)} categories; "
            f"memory {_get_memory_usage():.1f} MB"
        )

    results = _run_categories(queries, references, workers=workers, cancel=cancel, logger=logger)

    if logger:
        for col in columns:
            matched = sum(1 for g in results[col].values() if g)
            logger.info(f"  {col}: {matched} peaks with at least one gene")

    rows = merge(queries, results, columns)
    return ClassificationTable(tuple(columns), tuple(rows))


def classify_files(
    peaks_path: str | Path,
    annot_path: str | Path,
    out_path: str | Path,
    *,
    radii: Iterable[int] = DEFAULT_RADII,
    workers: Optional[int] = None,
    log_level: str = "INFO",
) -> int:
    """Read BED peaks and a GTF, write the peak distribution matrix. Returns an exit code."""
    # Load logger
    logger = _make_logger(log_level)
    try:
        peaks = read_peaks(peaks_path, logger=logger)
        exons = read_exons(annot_path, logger=logger)
        table = classify(peaks, exons, radii=radii, workers=workers, logger=logger)
        n = write_table(table, out_path)
    except PeakDistribError as e:
        logger.error(f"{e}")
        return 1

    logger.info(f"Wrote {n} peaks x {len(table.columns)} categories to {out_path}")
    return 0


def _derived_name(column: str) -> str:
    if column in (EXON, INTRON):
        return f"{column}s.gff"
    if column in (TSS, TTS):
        return f"{column}.gff"
    # window columns, e.g. tss1000 -> tss_ext1000.gff
    return f"{column[:3]}_ext{column[3:]}.gff"


def derive_files(
    annot_path: str | Path,
    out_dir: str | Path,
    *,
    radii: Iterable[int] = DEFAULT_RADII,
    force: bool = False,
    log_level: str = "INFO",
) -> int:
    """Write every derived reference set as GFF2 into out_dir. Returns an exit code."""
    logger = _make_logger(log_level)
    out = Path(out_dir)
    try:
        exons = read_exons(annot_path, logger=logger)
        references = build_references(exons, radii, logger=logger)

        paths = {col: out / _derived_name(col) for col in references}
        clashes = [p for p in paths.values() if p.exists()]
        if clashes and not force:
            raise IOFailure(
                "Refusing to overwrite existing files (use --force): "
                + ", ".join(str(p) for p in clashes)
            )
        try:
            out.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise IOFailure(f"could not create {out}: {e}") from e

        counts = write_gff_set({paths[col]: features for col, (features, _predicate) in references.items()})
        for col, path in paths.items():
            logger.info(f"Wrote {counts[path]} {col} features to {path}")
    except PeakDistribError as e:
        logger.error(f"{e}")
        return 1
    return 0

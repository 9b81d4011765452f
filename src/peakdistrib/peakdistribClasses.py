from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, TextIO, Tuple

from .errors import MalformedInput

# Feature kinds; window kinds are built from the radius, e.g. "tss1000"
EXON = "exon"
INTRON = "intron"
TSS = "tss"
TTS = "tts"

NA = "NA"

IntervalKey = Tuple[str, int, int]


def window_kind(site: str, radius: int) -> str:
    return f"{site}{radius}"


def category_columns(radii: Iterable[int]) -> List[str]:
    """Output column order: exon, intron, tss, tss windows, tts, tts windows."""
    radii = list(radii)
    return (
        [EXON, INTRON, TSS]
        + [window_kind(TSS, r) for r in radii]
        + [TTS]
        + [window_kind(TTS, r) for r in radii]
    )


# Coordinates are BED-style: 0-based start, exclusive end
@dataclass(frozen=True)
class GenomicInterval:
    chrom: str
    start: int
    end: int
    strand: str = "."

    def __post_init__(self):
        if self.start < 0 or self.start >= self.end:
            raise MalformedInput(
                "invalid interval, need 0 <= start < end",
                record=f"{self.chrom}:{self.start}-{self.end}",
            )

    @property
    def key(self) -> IntervalKey:
        return (self.chrom, self.start, self.end)

    def overlaps(self, other: "GenomicInterval") -> bool:
        return self.chrom == other.chrom and self.start < other.end and other.start < self.end

    def contains(self, other: "GenomicInterval") -> bool:
        return self.chrom == other.chrom and self.start <= other.start and other.end <= self.end

    def __str__(self) -> str:
        return f"{self.chrom}:{self.start}-{self.end}"


# Peaks are unstranded and identified by their coordinates only
Peak = GenomicInterval


@dataclass(frozen=True)
class AnnotatedFeature(GenomicInterval):
    gene_id: str = ""
    kind: str = EXON
    transcript_id: Optional[str] = None
    trlist: Tuple[str, ...] = ()

    def __post_init__(self):
        super().__post_init__()
        if not self.gene_id:
            raise MalformedInput("feature without gene_id", record=str(self))


@dataclass(frozen=True)
class GeneSet:
    """Non-redundant gene ids for one (peak, category) pair; empty means no match."""
    genes: Tuple[str, ...] = ()

    @classmethod
    def from_names(cls, names: Iterable[str]) -> "GeneSet":
        # dict keeps first-seen order while dropping repeats
        seen: Dict[str, None] = {}
        for n in names:
            if not n:
                raise ValueError("empty gene id in gene set")
            seen[n] = None
        if not seen:
            return NO_MATCH
        return cls(tuple(seen))

    def __bool__(self) -> bool:
        return bool(self.genes)

    def __len__(self) -> int:
        return len(self.genes)

    def __iter__(self):
        return iter(self.genes)

    def __contains__(self, gene: object) -> bool:
        return gene in self.genes

    def format(self) -> str:
        if not self.genes:
            return NA
        return "".join(g + "," for g in self.genes)


NO_MATCH = GeneSet()


@dataclass(frozen=True)
class ClassificationRow:
    interval: GenomicInterval
    # (column, genes) pairs; a mapping passed in is frozen on construction
    categories: Tuple[Tuple[str, GeneSet], ...] = ()

    def __post_init__(self):
        cats = self.categories
        if isinstance(cats, Mapping):
            cats = cats.items()
        object.__setattr__(self, "categories", tuple((c, g) for c, g in cats))

    def get(self, column: str) -> GeneSet:
        for c, g in self.categories:
            if c == column:
                return g
        return NO_MATCH

    def fields(self, columns: Iterable[str]) -> List[str]:
        iv = self.interval
        return [iv.chrom, str(iv.start), str(iv.end)] + [self.get(c).format() for c in columns]


@dataclass(frozen=True)
class ClassificationTable:
    columns: Tuple[str, ...]
    rows: Tuple[ClassificationRow, ...]

    @property
    def header(self) -> List[str]:
        return ["chr", "beg", "end"] + list(self.columns)

    def lines(self) -> Iterable[str]:
        yield "\t".join(self.header) + "\n"
        for row in self.rows:
            yield "\t".join(row.fields(self.columns)) + "\n"

    def write(self, fh: TextIO) -> int:
        n = 0
        for line in self.lines():
            fh.write(line)
            n += 1
        # header not counted
        return n - 1

import pytest

from peakdistrib.derive import (
    derive_introns,
    derive_tss,
    derive_tts,
    expand_window,
    sort_exons_by_transcript,
)
from peakdistrib.errors import MalformedInput, UnsortedInput
from peakdistrib.peakdistribClasses import AnnotatedFeature


def exon(start, end, tr, gene="G", chrom="chr1", strand="+"):
    return AnnotatedFeature(chrom, start, end, strand, gene_id=gene, transcript_id=tr)


def test_introns_are_gaps_between_exons():
    introns = derive_introns([exon(0, 100, "T"), exon(200, 300, "T"), exon(400, 500, "T")])
    assert [(i.start, i.end) for i in introns] == [(100, 200), (300, 400)]
    assert all(i.kind == "intron" and i.transcript_id == "T" and i.gene_id == "G" for i in introns)


def test_single_exon_and_abutting_exons_give_no_intron():
    introns = derive_introns([exon(0, 100, "T1"), exon(500, 600, "T2"), exon(600, 700, "T2")])
    assert introns == []


def test_contained_exon_does_not_open_intron():
    introns = derive_introns([exon(0, 500, "T"), exon(100, 200, "T"), exon(700, 800, "T")])
    assert [(i.start, i.end) for i in introns] == [(500, 700)]


def test_introns_from_fixture(exons):
    introns = derive_introns(sort_exons_by_transcript(exons))
    spans = sorted((i.chrom, i.start, i.end, i.transcript_id) for i in introns)
    assert spans == [
        ("chr1", 160000, 165000, "T1"),
        ("chr2", 120000, 130000, "T2"),
        ("chr4", 11000, 20000, "T3a"),
        ("chr4", 11000, 20000, "T3b"),
    ]


def test_unsorted_exons_rejected():
    with pytest.raises(UnsortedInput):
        derive_introns([exon(200, 300, "T"), exon(0, 100, "T")])


def test_interleaved_transcripts_rejected():
    with pytest.raises(UnsortedInput):
        derive_introns([exon(0, 100, "T1"), exon(0, 100, "T2"), exon(200, 300, "T1")])


def test_transcript_on_two_chromosomes():
    with pytest.raises(MalformedInput):
        derive_introns([exon(0, 100, "T"), exon(200, 300, "T", chrom="chr2")])


def test_tss_minus_strand_merges_transcripts(exons):
    g3 = [s for s in derive_tss(exons) if s.gene_id == "G3"]
    assert len(g3) == 1
    assert (g3[0].start, g3[0].end, g3[0].strand) == (20999, 21000, "-")
    assert g3[0].trlist == ("T3a", "T3b")


def test_tts_minus_strand(exons):
    g3 = [s for s in derive_tts(exons) if s.gene_id == "G3"]
    assert (g3[0].start, g3[0].trlist) == (10000, ("T3a",))


def test_plus_strand_sites(exons):
    tss = {s.gene_id: s.start for s in derive_tss(exons)}
    tts = {s.gene_id: s.start for s in derive_tts(exons)}
    assert tss["G1"] == 158000 and tts["G1"] == 166000
    assert tss["G2"] == 100000 and tts["G2"] == 130999


def test_one_site_per_gene_across_transcripts():
    ex = [exon(100, 200, "T1"), exon(50, 80, "T2"), exon(300, 400, "T2")]
    tss = derive_tss(ex)
    tts = derive_tts(ex)
    assert [(s.start, s.trlist) for s in tss] == [(50, ("T2",))]
    assert [(s.start, s.trlist) for s in tts] == [(399, ("T2",))]


def test_expand_window_clamps_and_tags():
    points = derive_tss([exon(300, 400, "T"), exon(5000, 5100, "T2", gene="H")])
    win = expand_window(points, 1000)
    assert [(w.gene_id, w.start, w.end, w.kind) for w in win] == [
        ("G", 0, 1301, "tss1000"),
        ("H", 4000, 6001, "tss1000"),
    ]
    # 2r + 1 bases when not clamped
    assert win[1].end - win[1].start == 2001


def test_expand_window_negative_radius():
    with pytest.raises(ValueError):
        expand_window([], -1)

import pytest

from peakdistrib.gfftools import read_exons, read_peaks

# G1 (+) on chr1: TSS at 158001, TTS at 166001 (1-based), one intron 160001-165000
# G2 (+) on chr2: long first exon, TSS at 100001
# G3 (-) on chr4: two transcripts sharing the TSS at 21000
GTF_ROWS = [
    "##description: toy annotation",
    "chr1\ttest\tgene\t158001\t166001\t.\t+\t.\tgene_id \"G1\";",
    "chr1\ttest\ttranscript\t158001\t166001\t.\t+\t.\tgene_id \"G1\"; transcript_id \"T1\";",
    "chr1\ttest\texon\t158001\t160000\t.\t+\t.\tgene_id \"G1\"; transcript_id \"T1\";",
    "chr1\ttest\texon\t165001\t166001\t.\t+\t.\tgene_id \"G1\"; transcript_id \"T1\";",
    "chr2\ttest\texon\t100001\t120000\t.\t+\t.\tgene_id \"G2\"; transcript_id \"T2\";",
    "chr2\ttest\texon\t130001\t131000\t.\t+\t.\tgene_id \"G2\"; transcript_id \"T2\";",
    "chr4\ttest\texon\t20001\t21000\t.\t-\t.\tgene_id \"G3\"; transcript_id \"T3a\";",
    "chr4\ttest\texon\t10001\t11000\t.\t-\t.\tgene_id \"G3\"; transcript_id \"T3a\";",
    "chr4\ttest\texon\t20001\t21000\t.\t-\t.\tgene_id \"G3\"; transcript_id \"T3b\";",
    "chr4\ttest\texon\t10501\t11000\t.\t-\t.\tgene_id \"G3\"; transcript_id \"T3b\";",
]

PEAK_ROWS = [
    "track name=peaks",
    "chr2\t110000\t110500\tpeakB\t5",
    "chr1\t161924\t162248\tpeakA\t7",
    "chr3\t500\t900\tpeakC\t1",
    "chr2\t99000\t100000\tpeakD\t2",
    "chr4\t15000\t15100\tpeakE\t3",
]


@pytest.fixture
def gtf_path(tmp_path_factory):
    p = tmp_path_factory.mktemp("inputs") / "annot.gtf"
    p.write_text("\n".join(GTF_ROWS) + "\n")
    return p


@pytest.fixture
def peaks_path(tmp_path_factory):
    p = tmp_path_factory.mktemp("inputs") / "peaks.bed"
    p.write_text("\n".join(PEAK_ROWS) + "\n")
    return p


@pytest.fixture
def exons(gtf_path):
    return read_exons(gtf_path)


@pytest.fixture
def peaks(peaks_path):
    return read_peaks(peaks_path)

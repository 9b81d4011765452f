import argparse

from .classify import DEFAULT_RADII, classify_files, derive_files


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if any(r <= 0 for r in args.radii):
        parser.error("--radii must be positive integers")
    if getattr(args, "workers", None) is not None and args.workers < 1:
        parser.error("--workers must be at least 1")

    # Peak distribution matrix
    if args.cmd == "classify":
        return classify_files(
            peaks_path=args.peaks,
            annot_path=args.annot,
            out_path=args.out,
            radii=args.radii,
            workers=args.workers,
            log_level=args.log_level,
        )

    # Derived reference GFFs (introns, TSS/TTS and their windows)
    elif args.cmd == "derive":
        return derive_files(
            annot_path=args.annot,
            out_dir=args.out_dir,
            radii=args.radii,
            force=args.force,
            log_level=args.log_level,
        )
    else:
        parser.error("Unknown command")

    return 2


def _add_common(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--radii",
        nargs="+",
        type=int,
        default=list(DEFAULT_RADII),
        help="Window radii (bp) around each TSS/TTS (default: 1000 5000)."
    )
    p.add_argument(
        "--log-level",
        default="INFO",
        choices=["ERROR", "WARNING", "INFO", "DEBUG"],
        help="Logging verbosity (default: INFO)."
    )


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="peakdistrib",
        description="Classify peaks by the genes whose exons, introns, TSS and TTS they hit."
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    # classify (peaks x categories matrix)
    c = sub.add_parser(
        "classify",
        help="Write the peak distribution matrix: one row per peak, one gene-list column per category."
    )
    c.add_argument(
        "peaks",
        help="Unstranded peaks in BED format (.bed or .bed.gz)."
    )
    c.add_argument(
        "annot",
        help="GTF/GFF2 annotation with exon rows carrying gene_id (and ideally transcript_id)."
    )
    c.add_argument(
        "--out",
        default="-",
        help="Output TSV path; '-' writes to stdout (default)."
    )
    c.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Threads for the per-category overlaps (default: one per category; 1 runs inline)."
    )
    _add_common(c)

    # derive (intermediate feature files)
    d = sub.add_parser(
        "derive",
        help="Write the exon, intron, TSS, TTS and window reference sets as GFF2 files."
    )
    d.add_argument(
        "annot",
        help="GTF/GFF2 annotation with exon rows."
    )
    d.add_argument(
        "--out-dir",
        dest="out_dir",
        required=True,
        help="Directory for the derived .gff files."
    )
    d.add_argument(
        "--force",
        action="store_true",
        help="Overwrite existing files in --out-dir."
    )
    _add_common(d)
    return p

if __name__ == "__main__":
    raise SystemExit(main())

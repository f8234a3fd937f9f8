from __future__ import annotations

import argparse
import csv
import json
import logging
import re
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Sequence

from colorama import Fore, Style, init

from . import __version__
from .analysis import AnalysisConfig, AnalysisResult, run_analysis
from .errors import GPODepsError
from .models import Scope
from .projection import FILE_COLUMNS, MATCH_COLUMNS, UNMATCHED_COLUMNS, ProjectedReport, ReportProjection


init(autoreset=True)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2

LOCALE_TAG = re.compile(r"^[a-z]{2}-[A-Z]{2}$")


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _validate_input_paths(artifacts: Sequence[str], catalog: str) -> tuple[list[Path], Path]:
    files = [Path(a) for a in artifacts]
    for p in files:
        if not p.exists():
            raise FileNotFoundError(str(p))
        if not p.is_file():
            raise IsADirectoryError(str(p))
    root = Path(catalog)
    if not root.is_dir():
        raise NotADirectoryError(str(root))
    return files, root


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def export_json(analysis: AnalysisResult, report: ProjectedReport, output_path: Path) -> None:
    result = analysis.result
    payload = {
        "generated_at": _utc_now_iso(),
        "tool": "gpodeps",
        "locale": result.locale,
        "summary": {
            "matches": len(result.matches),
            "unmatched": len(result.unmatched),
            "required_template_files": [p.name for p in result.required_template_files],
            "required_strings_files": [p.name for p in result.required_strings_files],
        },
        "artifacts": [
            {
                "path": str(a.path),
                "kind": a.kind.value,
                "strategy": a.strategy.value if a.strategy else None,
                "version": a.version,
            }
            for a in analysis.artifacts
        ],
        "warnings": [
            {"kind": w.kind, "path": str(w.path) if w.path else None, "message": w.message}
            for w in analysis.warnings
        ],
        "matches": [r.as_dict() for r in report.matches],
        "unmatched": [r.as_dict() for r in report.unmatched],
        "files": [r.as_dict() for r in report.files],
    }
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")


def export_csv(report: ProjectedReport, output_path: Path) -> None:
    """Write match rows to ``output_path`` plus ``-unmatched`` and ``-files`` siblings."""
    output_path.parent.mkdir(parents=True, exist_ok=True)
    tables = (
        (output_path, MATCH_COLUMNS, report.matches),
        (output_path.with_name(f"{output_path.stem}-unmatched{output_path.suffix}"), UNMATCHED_COLUMNS, report.unmatched),
        (output_path.with_name(f"{output_path.stem}-files{output_path.suffix}"), FILE_COLUMNS, report.files),
    )
    for path, fieldnames, rows in tables:
        with path.open("w", newline="", encoding="utf-8") as f:
            writer = csv.DictWriter(f, fieldnames=list(fieldnames))
            writer.writeheader()
            for row in rows:
                writer.writerow(row.as_dict())


def print_summary(analysis: AnalysisResult, report: ProjectedReport) -> None:
    result = analysis.result
    print(f"\n{Style.BRIGHT}[Artifacts]")
    for a in analysis.artifacts:
        count = len(a.registry) + len(a.policies)
        how = f" via {a.strategy.value}" if a.strategy else ""
        print(f"  {a.path.name} ({a.kind.value}{how}): {count} settings")

    for w in analysis.warnings:
        print(f"{Fore.YELLOW}[!] {w.kind}: {w.message}")

    print(f"\n{Style.BRIGHT}[Required files]")
    if not report.files:
        print(f"{Fore.YELLOW}  (none)")
    for row in report.files:
        color = Fore.RED if row.status == "Missing" else Fore.GREEN
        print(f"  {color}{row.file_type} {row.file_name}: {row.status}")

    if report.unmatched:
        print(f"\n{Style.BRIGHT}[Unmatched settings]")
        for row in report.unmatched:
            print(f"  {Fore.YELLOW}{row.source}: {row.setting_name}")

    print(f"\n{Style.BRIGHT}[Summary]")
    print(f"  Matches:        {len(result.matches)}")
    print(f"  Unmatched:      {len(result.unmatched)}")
    print(f"  Template files: {len(result.required_template_files)}")
    print(f"  Strings files:  {len(result.required_strings_files)}")
    missing = len(report.missing_files)
    if missing:
        print(f"  {Fore.RED}Missing files:  {missing}{Style.RESET_ALL}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gpodeps",
        description=(
            "GPO Administrative Template dependency resolver\n\n"
            "Finds which ADMX/ADML files are needed to represent the Administrative Template "
            "settings of a Group Policy object, and which settings match no known template."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Inputs:\n"
            "  - Registry.pol files (PReg binary, detected by signature or .pol extension).\n"
            "  - Get-GPOReport XML reports, or HTML reports (.htm/.html).\n"
            "  - A PolicyDefinitions-style catalog: *.admx files plus a <locale>/ folder of *.adml.\n\n"
            "Exit codes: 0 resolved (even with unmatched settings), 1 hard failure, 2 bad arguments.\n\n"
            "Examples:\n"
            "  gpodeps Registry.pol --catalog C:\\Windows\\PolicyDefinitions\n"
            "  gpodeps report.xml --catalog ./PolicyDefinitions --locale de-DE --json-out out.json\n"
            "  gpodeps Machine/Registry.pol report.html --catalog ./store --csv-out deps.csv\n"
        ),
    )
    parser.add_argument("artifacts", nargs="+", help="Registry.pol, XML report or HTML report")
    parser.add_argument("--catalog", required=True, help="Template catalog root (PolicyDefinitions directory)")
    parser.add_argument("--locale", default="en-US", help="Locale folder for ADML files (default: en-US)")
    parser.add_argument(
        "--scope",
        choices=("Machine", "User"),
        help="Scope of the Registry.pol input (default: taken from each policy's class)",
    )
    parser.add_argument("--workers", type=int, help="Worker threads for parsing and matching")
    parser.add_argument("--max-data-size", type=int, help="Reject Registry.pol entries declaring more data bytes")
    parser.add_argument("--json-out", help="Write the projection to JSON")
    parser.add_argument("--csv-out", help="Write the projection to CSV")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    if not LOCALE_TAG.match(args.locale):
        print(f"{Fore.RED}[!] Input error: locale '{args.locale}' is not of the form xx-XX", file=sys.stderr)
        return EXIT_USAGE
    if args.workers is not None and args.workers < 1:
        print(f"{Fore.RED}[!] Input error: --workers must be at least 1", file=sys.stderr)
        return EXIT_USAGE

    try:
        artifacts, catalog_root = _validate_input_paths(args.artifacts, args.catalog)
    except OSError as exc:
        print(f"{Fore.RED}[!] Input error: {exc}", file=sys.stderr)
        return EXIT_USAGE

    scope = {"Machine": Scope.COMPUTER, "User": Scope.USER}.get(args.scope) if args.scope else None
    config = AnalysisConfig(
        catalog_root=catalog_root,
        locale=args.locale,
        workers=args.workers,
        max_data_size=args.max_data_size,
        scope=scope,
    )

    try:
        analysis = run_analysis(artifacts, config)
    except GPODepsError as exc:
        print(f"{Fore.RED}[!] {exc}", file=sys.stderr)
        return EXIT_FAILURE

    report = ReportProjection().project(analysis.result)
    print_summary(analysis, report)

    if args.json_out:
        try:
            export_json(analysis, report, Path(args.json_out))
            print(f"{Fore.GREEN}[+] Wrote JSON: {args.json_out}")
        except OSError as exc:
            print(f"{Fore.RED}[!] JSON export error: {exc}", file=sys.stderr)
            return EXIT_FAILURE

    if args.csv_out:
        try:
            export_csv(report, Path(args.csv_out))
            print(f"{Fore.GREEN}[+] Wrote CSV: {args.csv_out}")
        except OSError as exc:
            print(f"{Fore.RED}[!] CSV export error: {exc}", file=sys.stderr)
            return EXIT_FAILURE

    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())

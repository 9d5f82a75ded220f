#!/usr/bin/env python3
"""
Download a BLS survey from download.bls.gov, join its files and save as CSV

Usage:
    # Generic survey (joins series + every lookup file)
    python scripts/bls/load_bls_dataset.py la --data-file la.data.1.CurrentS

    # Ready-made JOLTS / OEWS / CES / LAUS loaders
    python scripts/bls/load_bls_dataset.py jt --preset
    python scripts/bls/load_bls_dataset.py oe --preset
    python scripts/bls/load_bls_dataset.py sm --preset

    # Keep the raw code columns
    python scripts/bls/load_bls_dataset.py ce --data-file ce.data.0.AllCESSeries --no-simplify

    # List the files a survey publishes
    python scripts/bls/load_bls_dataset.py jt --list

    # Reuse local copies between runs
    python scripts/bls/load_bls_dataset.py jt --preset --cache-dir data/bls_cache
"""
import sys
import logging
import argparse
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from bls_loader.config import settings
from bls_loader.bls import (
    BLSLoaderError,
    FlatFileCache,
    FlatFileClient,
    classify_survey_files,
    list_survey_files,
    load_bls_dataset,
    get_jolts,
    get_oews,
    get_ces,
    get_national_ces,
    get_laus,
    format_warnings,
)

PRESETS = {
    "jt": get_jolts,
    "oe": get_oews,
    "sm": get_ces,
    "ce": get_national_ces,
    "la": get_laus,
}


def main():
    parser = argparse.ArgumentParser(description="Load a BLS survey into a single CSV")
    parser.add_argument('survey', help='Survey code (e.g., jt, oe, la, ce)')
    parser.add_argument('--data-file', help='Data file to use when the survey publishes several')
    parser.add_argument('--output', help='CSV path (default: data/bls/<survey>.csv)')
    parser.add_argument('--preset', action='store_true', help='Use the ready-made loader (jt, oe, sm, ce, la)')
    parser.add_argument('--no-simplify', action='store_true', help='Keep code and housekeeping columns')
    parser.add_argument('--cache-dir', help='Read files through a local cache in this directory')
    parser.add_argument('--list', action='store_true', help='List survey files and exit')
    parser.add_argument('--detailed', action='store_true', help='Show per-file diagnostics')
    parser.add_argument('--log-level', default=settings.app.log_level, help='Logging level')

    args = parser.parse_args()

    logging.basicConfig(
        level=args.log_level.upper(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    survey = args.survey.lower()
    client = FlatFileClient()
    cache = None
    if args.cache_dir or settings.bls.use_cache:
        cache = FlatFileCache(cache_dir=args.cache_dir, client=client)

    print("=" * 80)
    print(f"BLS SURVEY: {survey.upper()}")
    print("=" * 80)
    print()

    try:
        if args.list:
            groups = classify_survey_files(list_survey_files(survey, client=client))
            for group, names in groups.items():
                print(f"{group} ({len(names)}):")
                for name in names:
                    print(f"  {name}")
            return 0

        if args.preset:
            if survey not in PRESETS:
                print(f"No ready-made loader for '{survey}'. Available: {', '.join(PRESETS)}")
                return 1
            collection = PRESETS[survey](return_diagnostics=True, client=client, cache=cache)
        else:
            collection = load_bls_dataset(
                survey,
                data_file=args.data_file,
                simplify_table=not args.no_simplify,
                return_diagnostics=True,
                client=client,
                cache=cache,
            )
    except BLSLoaderError as e:
        print(f"Error: {e}")
        return 1

    output = Path(args.output) if args.output else Path("data/bls") / f"{survey}.csv"
    output.parent.mkdir(parents=True, exist_ok=True)
    collection.data.to_csv(output, index=False)

    rows, cols = collection.summary.final_dimensions
    print(f"Saved {rows:,} rows x {cols} columns to {output}")
    print()
    print(format_warnings(collection, detailed=args.detailed))
    print()
    print("=" * 80)
    return 0


if __name__ == "__main__":
    sys.exit(main())

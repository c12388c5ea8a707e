#!/usr/bin/env python3
"""
Time-Weighted DTW Classification - Main Script

This script drives the DTW land-cover / crop-type classification:
1. Sample reference signatures from a band stack at labelled points
2. Summarise the reference signatures per class
3. Classify every pixel of a band stack against the signatures
4. Stratify cropland using classifications of earlier periods

Usage:
    python main.py --help
    python main.py sample --stack data/stack_2020.tif --points data/signatures.geojson --class-column lc_class --timeseries-len 6 --output data/signatures.csv
    python main.py summary --signatures data/signatures.csv --class-column lc_class --band-no 4 --timeseries-len 6
    python main.py classify --signatures data/signatures.csv --stack data/stack_2020.tif --class-column lc_class --timeseries-len 6 --period 2020 --output output/dtw_2020.tif
    python main.py stratify --current output/dtw_2020.tif --previous output/dtw_2019.tif output/dtw_2018.tif --output output/strat_2020.tif --rangeland-class 6 --cropland-class 5 --abandoned-class 8 --fallow-class 9
"""

import os
import sys
import argparse
import logging

import numpy as np

# Add src directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), 'src'))

from twdtw.config import DTWConfig, load_section
from twdtw.classifier import DTWClassifier
from twdtw.history import stratify_cropland
from twdtw.raster import RasterStack, read_band, write_bands
from twdtw.signatures import SignatureStore

logger = logging.getLogger(__name__)

# Fallbacks for classify options set neither on the command line nor in the
# "classification" section of --config
CLASSIFY_DEFAULTS = {
    'patterns_len': None,
    'n_jobs': 1,
    'chunk_size': 4096,
    'nodata_class': 0,
}
CLASSIFY_REQUIRED = ('timeseries_len', 'class_column')


def setup_logging(log_file: str = 'pipeline.log') -> None:
    """Log to console and to a pipeline log file."""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler()
        ],
        force=True
    )


def build_config(args) -> DTWConfig:
    """
    Merge the optional JSON configuration with command line overrides.

    Args:
        args: Parsed command line arguments

    Returns:
        DTW configuration
    """
    options = {}
    if args.config:
        section = load_section(args.config, None).get('dtw') or {}
        options = DTWConfig.from_dict(section).to_dict()

    overrides = {
        'constraint_type': args.constraint_type,
        'weight_type': args.weight_type,
        'distance_type': args.distance_type,
        'alpha': args.alpha,
        'beta': args.beta,
        'patterns_no': args.patterns_no,
    }
    options.update({k: v for k, v in overrides.items() if v is not None})
    if args.exclude_first_step:
        options['exclude_first_step'] = True
    options['timeseries_len'] = args.timeseries_len

    return DTWConfig.from_dict(options)


def apply_classification_defaults(args) -> list:
    """
    Fill classify options missing from the command line.

    Values come from the "classification" section of --config when present,
    then from CLASSIFY_DEFAULTS. Command line values always win.

    Args:
        args: Parsed command line arguments, updated in place

    Returns:
        Names of required options that are still unset
    """
    section = {}
    if args.config:
        document = load_section(args.config, None)
        section = document.get('classification') or {}
        known = set(CLASSIFY_DEFAULTS) | set(CLASSIFY_REQUIRED)
        unknown = sorted(set(section) - known)
        if unknown:
            logger.warning(f"Ignoring unknown classification options: {unknown}")

    for name in CLASSIFY_REQUIRED + tuple(CLASSIFY_DEFAULTS):
        if getattr(args, name, None) is None and section.get(name) is not None:
            setattr(args, name, section[name])
    for name, default in CLASSIFY_DEFAULTS.items():
        if getattr(args, name, None) is None:
            setattr(args, name, default)

    return [name for name in CLASSIFY_REQUIRED if getattr(args, name, None) is None]


def load_signatures(args, band_no: int) -> SignatureStore:
    patterns_len = args.patterns_len or args.timeseries_len
    return SignatureStore.from_csv(
        args.signatures,
        class_column=args.class_column,
        band_no=band_no,
        patterns_len=patterns_len,
    )


def sample_signatures(args) -> str:
    """
    Sample reference signatures from a band stack.

    Args:
        args: Parsed command line arguments

    Returns:
        Path to the signature CSV
    """
    logger.info("Starting signature sampling")

    stack = RasterStack(args.stack, timeseries_len=args.timeseries_len).load()
    df = stack.sample_points(args.points, args.class_column)

    out_dir = os.path.dirname(args.output)
    if out_dir:
        os.makedirs(out_dir, exist_ok=True)
    df.to_csv(args.output, index=False)

    logger.info(f"Saved {len(df)} signatures to {args.output}")
    return args.output


def summarize_signatures(args) -> dict:
    """
    Log the number of reference signatures per class.

    Args:
        args: Parsed command line arguments

    Returns:
        Mapping from class id to signature count
    """
    store = load_signatures(args, args.band_no)
    counts = store.class_counts()

    logger.info(f"Signatures: {store.patterns_no} across {len(counts)} classes")
    for class_id, count in counts.items():
        logger.info(f"  Class {class_id} ({store.class_name(class_id)}): {count}")
    return counts


def classify_stack(args) -> str:
    """
    Classify every pixel of a band stack.

    Args:
        args: Parsed command line arguments

    Returns:
        Path to the classification raster
    """
    logger.info("Starting DTW classification")

    config = build_config(args)
    stack = RasterStack(args.stack, timeseries_len=args.timeseries_len).load()
    store = load_signatures(args, stack.band_no)

    classifier = DTWClassifier(store, config, nodata_class=args.nodata_class)
    batch = classifier.classify_batch(
        stack.observations(),
        n_jobs=args.n_jobs,
        chunk_size=args.chunk_size
    )
    stack.write_classification(args.output, batch, period=args.period)

    # Log statistics
    classes, counts = np.unique(batch.class_ids, return_counts=True)
    logger.info(f"Classification complete. Pixels per class:")
    for class_id, count in zip(classes, counts):
        logger.info(f"  Class {class_id} ({store.class_name(int(class_id))}): {count}")
    if batch.failed:
        logger.warning(f"  {batch.failed} pixels failed and were set to class {args.nodata_class}")

    return args.output


def stratify_history(args) -> str:
    """
    Split rangeland into abandoned and short-term fallow cropland.

    Args:
        args: Parsed command line arguments

    Returns:
        Path to the stratified raster
    """
    logger.info("Starting cropland stratification")

    current, profile = read_band(args.current)
    previous = [read_band(path)[0] for path in args.previous]
    crop_mask = read_band(args.crop_mask)[0].astype(bool) if args.crop_mask else None

    stratified = stratify_cropland(
        current.astype(np.int64),
        [p.astype(np.int64) for p in previous],
        rangeland_class=args.rangeland_class,
        cropland_class=args.cropland_class,
        abandoned_class=args.abandoned_class,
        fallow_class=args.fallow_class,
        crop_mask=crop_mask
    )
    write_bands(args.output, {'classification': stratified}, profile)
    return args.output


def add_dtw_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument('--config', help='JSON configuration file with a "dtw" section')
    parser.add_argument('--constraint-type', choices=['none', 'time-weighted', 'time-constrained'],
                        help='Temporal constraint policy (default: time-weighted)')
    parser.add_argument('--weight-type', choices=['logistic', 'linear'],
                        help='Weight function for time-weighted DTW (default: logistic)')
    parser.add_argument('--distance-type', choices=['euclidean', 'angular'],
                        help='Local distance (default: euclidean)')
    parser.add_argument('--alpha', type=float, help='Steepness/slope of the time weight (default: 0.1)')
    parser.add_argument('--beta', type=float, help='Tolerance or window in days (default: 50)')
    parser.add_argument('--patterns-no', type=int, help='Maximum signatures evaluated per class')
    parser.add_argument('--exclude-first-step', action='store_true',
                        help='Align from the second time step onward')


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Time-Weighted DTW Land Cover Classification",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )
    parser.add_argument('--log-file', default='pipeline.log', help='Path of the pipeline log file')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    # Sample signatures subcommand
    sample_parser = subparsers.add_parser('sample', help='Sample reference signatures at labelled points')
    sample_parser.add_argument('--stack', required=True, help='Band stack GeoTIFF (band-major, doy last)')
    sample_parser.add_argument('--points', required=True, help='Labelled points (GeoJSON/Shapefile)')
    sample_parser.add_argument('--class-column', required=True, help='Attribute holding the class label')
    sample_parser.add_argument('--timeseries-len', type=int, required=True, help='Time steps per band')
    sample_parser.add_argument('--output', required=True, help='Output CSV for the signatures')

    # Summary subcommand
    summary_parser = subparsers.add_parser('summary', help='Count reference signatures per class')
    summary_parser.add_argument('--signatures', required=True, help='Signature CSV')
    summary_parser.add_argument('--class-column', required=True, help='Column holding the class label')
    summary_parser.add_argument('--band-no', type=int, required=True, help='Number of bands excluding doy')
    summary_parser.add_argument('--timeseries-len', type=int, required=True, help='Time steps per band')
    summary_parser.add_argument('--patterns-len', type=int, help='Signature length (default: timeseries-len)')

    # Classify subcommand
    classify_parser = subparsers.add_parser('classify', help='Classify a band stack with DTW')
    classify_parser.add_argument('--signatures', required=True, help='Signature CSV')
    classify_parser.add_argument('--stack', required=True, help='Band stack GeoTIFF (band-major, doy last)')
    classify_parser.add_argument('--output', required=True, help='Output GeoTIFF (classification, score)')
    classify_parser.add_argument('--class-column', help='Column holding the class label')
    classify_parser.add_argument('--timeseries-len', type=int, help='Time steps per band')
    classify_parser.add_argument('--patterns-len', type=int, help='Signature length (default: timeseries-len)')
    classify_parser.add_argument('--period', help='Label appended to output band names, e.g. 2020')
    classify_parser.add_argument('--n-jobs', type=int, help='Parallel workers, -1 for all cores (default: 1)')
    classify_parser.add_argument('--chunk-size', type=int, help='Pixels per work chunk (default: 4096)')
    classify_parser.add_argument('--nodata-class', type=int, help='Class for pixels that fail (default: 0)')
    add_dtw_arguments(classify_parser)

    # Stratify subcommand
    stratify_parser = subparsers.add_parser('stratify', help='Distinguish abandoned and fallow cropland')
    stratify_parser.add_argument('--current', required=True, help='Classification raster of the current period')
    stratify_parser.add_argument('--previous', required=True, nargs='+', help='Classification rasters of earlier periods')
    stratify_parser.add_argument('--output', required=True, help='Output GeoTIFF')
    stratify_parser.add_argument('--crop-mask', help='Raster where non-zero pixels may be relabelled')
    stratify_parser.add_argument('--rangeland-class', type=int, required=True, help='Rangeland class id')
    stratify_parser.add_argument('--cropland-class', type=int, required=True, help='Active cropland class id')
    stratify_parser.add_argument('--abandoned-class', type=int, required=True, help='Abandoned cropland class id')
    stratify_parser.add_argument('--fallow-class', type=int, required=True, help='Short-term fallow class id')

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        return

    setup_logging(args.log_file)

    if args.command == 'sample':
        sample_signatures(args)
    elif args.command == 'summary':
        summarize_signatures(args)
    elif args.command == 'classify':
        missing = apply_classification_defaults(args)
        if missing:
            parser.error(
                'classify requires ' + ', '.join('--' + name.replace('_', '-') for name in missing)
                + ' on the command line or in the "classification" section of --config'
            )
        classify_stack(args)
    elif args.command == 'stratify':
        stratify_history(args)


if __name__ == '__main__':
    main()

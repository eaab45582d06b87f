#!/usr/bin/env python3
"""
Panorama Stitching CLI
Command-line interface for chaining 2+ overlapping photos into a panorama.

Usage:
    python -m panochain.panorama_cli image1.jpg image2.jpg image3.jpg [options]
"""

import argparse
import logging
import os
import sys
import time

from .errors import StitchingError
from .features import DETECTORS
from .image_io import read_images, write_image, write_metadata
from .logger import setup_logger
from .panorama_stitcher import EstimationMethod, PanoramaStitcher

logger = logging.getLogger(__name__)


def build_parser():
    parser = argparse.ArgumentParser(
        description='Stitch an ordered sequence of overlapping images into a panorama'
    )

    parser.add_argument(
        'images',
        nargs='+',
        help='Input images (left to right order)'
    )

    parser.add_argument(
        '-o', '--output',
        default='outputs/panorama.png',
        help='Output panorama image path (default: outputs/panorama.png)'
    )

    parser.add_argument(
        '--metadata',
        default=None,
        help='Also save transforms and per-pair statistics as JSON to this path'
    )

    parser.add_argument(
        '--method',
        choices=[m.value for m in EstimationMethod],
        default=EstimationMethod.RANSAC.value,
        help='Transform estimation method (default: ransac)'
    )

    parser.add_argument(
        '--detector',
        choices=sorted(DETECTORS),
        default='sift',
        help='Feature detector (default: sift)'
    )

    parser.add_argument(
        '--max-distance',
        type=float,
        default=3.0,
        help='RANSAC inlier reprojection threshold in pixels (default: 3.0)'
    )

    parser.add_argument(
        '--max-trials',
        type=int,
        default=5000,
        help='Maximum number of RANSAC trials (default: 5000)'
    )

    parser.add_argument(
        '--confidence',
        type=float,
        default=99.9,
        help='RANSAC confidence in percent (default: 99.9)'
    )

    parser.add_argument(
        '--max-ratio',
        type=float,
        default=0.7,
        help='Ratio test threshold for matching (default: 0.7)'
    )

    parser.add_argument(
        '--match-threshold',
        type=float,
        default=60.0,
        help='Match threshold as percent of the maximum descriptor distance (default: 60)'
    )

    parser.add_argument(
        '--guard-factor',
        type=float,
        default=3.0,
        help='Largest canvas size as a multiple of the largest image (default: 3.0)'
    )

    parser.add_argument(
        '--interpolation',
        choices=['nearest', 'bilinear'],
        default='bilinear',
        help='Resampling used when warping (default: bilinear)'
    )

    parser.add_argument(
        '--min-images',
        type=int,
        default=3,
        help='Fewest images accepted (default: 3)'
    )

    parser.add_argument(
        '--seed',
        type=int,
        default=None,
        help='Random seed for reproducible RANSAC sampling'
    )

    parser.add_argument(
        '--workers',
        type=int,
        default=1,
        help='Threads for feature detection and pairwise estimation (default: 1)'
    )

    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Enable debug logging'
    )

    parser.add_argument(
        '--log-file',
        default=None,
        help='Also write DEBUG log output to this file'
    )

    return parser


def print_stats(result, num_images):
    """Print the per-pair match and inlier summary."""
    stats = result.stats
    print("\n=== PANORAMA STATS ===")
    print(f"Images: {num_images}")
    print(f"Matches per adjacent pair: {stats.matches}")

    inliers = stats.inliers
    if any(count is not None for count in inliers):
        print(f"RANSAC inliers per adjacent pair: {inliers}")
        ratio = stats.mean_inlier_ratio()
        if ratio is not None:
            print(f"Average inlier ratio: {100 * ratio:.2f}%")

    for pair in stats:
        if pair.warning:
            print(f"Warning: {pair.warning}")

    print(f"Anchor image: {result.anchor_index + 1}")
    print(f"Image sizes (HxW): {[f'{h}x{w}' for h, w in result.image_sizes]}")


def main(argv=None):
    """Main function for CLI."""
    args = build_parser().parse_args(argv)

    setup_logger(level=logging.DEBUG if args.verbose else logging.INFO,
                 log_file=args.log_file)

    if len(args.images) < args.min_images:
        print(f"Error: Need at least {args.min_images} images to stitch")
        return 1

    for img_path in args.images:
        if not os.path.exists(img_path):
            print(f"Error: Image not found: {img_path}")
            return 1

    try:
        images = read_images(args.images)
    except IOError as e:
        print(f"Error reading images: {e}")
        return 1

    for i, img in enumerate(images):
        logger.info("Image %d: %s", i + 1, img.shape)

    start_time = time.time()

    try:
        stitcher = PanoramaStitcher(
            detector=args.detector,
            method=args.method,
            matcher_params={
                'match_threshold': args.match_threshold,
                'max_ratio': args.max_ratio,
            },
            ransac_params={
                'max_distance': args.max_distance,
                'max_trials': args.max_trials,
                'confidence': args.confidence,
                'random_state': args.seed,
            },
            canvas_params={
                'guard_factor': args.guard_factor,
            },
            blending_params={
                'interpolation': args.interpolation,
            },
            min_images=args.min_images,
            max_workers=args.workers,
        )
        result = stitcher.stitch(images)
    except StitchingError as e:
        print(f"\nError during stitching: {e}")
        return 1

    elapsed_time = time.time() - start_time

    try:
        write_image(args.output, result.panorama)
        if args.metadata:
            write_metadata(args.metadata, result.metadata(
                detector_name=stitcher.detector.name,
                filenames=[os.path.basename(path) for path in args.images],
            ))
    except IOError as e:
        print(f"Error saving output: {e}")
        return 1

    print_stats(result, len(images))
    print(f"\nPanorama saved to: {args.output}")
    if args.metadata:
        print(f"Metadata saved to: {args.metadata}")
    print(f"Final size: {result.panorama.shape}")
    print(f"Processing time: {elapsed_time:.2f} seconds")

    return 0


if __name__ == '__main__':
    sys.exit(main())

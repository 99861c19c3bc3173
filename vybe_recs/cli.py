"""
Command-Line Interface for Vybe Recs
====================================

Usage:
    python -m vybe_recs.cli <reference_track> [<reference_track> ...] --context TEXT [options]

Options:
    --context, -c   Free-text listening situation (required)
    --num, -n       Number of recommendations (default: 20)
    --listener      Listener ID whose history personalizes the results
    --exclude       Track IDs that must not be recommended
    --output, -o    Output file path (default: stdout)
    --format        Output format: json, csv or simple (default: json)
    --verbose, -v   Verbose logging
    --no-cache      Disable API response caching
    --clear-cache   Delete cached API responses and contexts first
    --help, -h      Show this help message

Examples:
    python -m vybe_recs.cli https://open.spotify.com/track/4uLU6hMCjMI75M1A2tKUQC -c "rainy sunday morning"
    python -m vybe_recs.cli spotify:track:4uLU6hMCjMI75M1A2tKUQC -c "gym" -n 5 --format simple
"""

import argparse
import csv
import io
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from .config import CACHE_DIR, NUM_RECOMMENDATIONS, OUTPUT_FORMATS
from .context import CachedContextInterpreter, ExampleContextInterpreter
from .errors import RecommendationError
from .recommender import RecommendationEngine, RecommendationOutput
from .spotify_client import SpotifyClient
from .utils import Cache, configure_logging, normalize_track_id, validate_track_id

logger = logging.getLogger(__name__)


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser for CLI."""
    parser = argparse.ArgumentParser(
        prog='vybe-recs',
        description='Vybe Recs - context-aware, individually personalized track recommendations',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s https://open.spotify.com/track/xxxxx -c "late night study"
  %(prog)s spotify:track:xxxxx spotify:track:yyyyy -c "workout" -n 5

Environment Variables:
  SPOTIFY_CLIENT_ID      Your Spotify API client ID
  SPOTIFY_CLIENT_SECRET  Your Spotify API client secret
  VYBE_LOG_LEVEL         Logging level (default: INFO)
  VYBE_CACHE_DIR         Directory for cached API responses
        """
    )

    parser.add_argument(
        'references',
        nargs='+',
        help='1-5 Spotify track URLs, URIs, or IDs'
    )

    parser.add_argument(
        '-c', '--context',
        type=str,
        required=True,
        help='Describe the listening situation'
    )

    parser.add_argument(
        '-n', '--num',
        type=int,
        default=NUM_RECOMMENDATIONS,
        help=f'Number of recommendations to generate (default: {NUM_RECOMMENDATIONS})'
    )

    parser.add_argument(
        '--listener',
        type=str,
        default='anonymous',
        help='Listener ID (default: anonymous)'
    )

    parser.add_argument(
        '--exclude',
        nargs='*',
        default=[],
        help='Track IDs to leave out of the results'
    )

    parser.add_argument(
        '-o', '--output',
        type=str,
        default=None,
        help='Output file path (default: print to stdout)'
    )

    parser.add_argument(
        '--format',
        type=str,
        choices=OUTPUT_FORMATS,
        default='json',
        help='Output format (default: json)'
    )

    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Enable verbose output'
    )

    parser.add_argument(
        '--no-cache',
        action='store_true',
        help='Disable API response caching'
    )

    parser.add_argument(
        '--clear-cache',
        action='store_true',
        help='Delete cached API responses and interpreted contexts before running'
    )

    return parser


def format_output(result: RecommendationOutput, fmt: str) -> str:
    """Format recommendation output based on requested format."""
    if fmt == 'json':
        return result.to_json(indent=2)

    elif fmt == 'csv':
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator='\n')
        writer.writerow(['track_id', 'track_name', 'artists', 'score', 'explanation'])
        for rec in result.recommendations:
            writer.writerow([
                rec.track_id,
                rec.track_name,
                ';'.join(rec.artist_names),
                f"{rec.score:.4f}",
                rec.explanation,
            ])
        return buffer.getvalue().rstrip('\n')

    elif fmt == 'simple':
        weights = result.context_weights
        lines = [
            f"Recommendations for: {result.context_text}",
            f"   Listener: {result.listener_id}",
            f"   References: {len(result.reference_track_ids)}",
            f"   Context weights: valence {weights.valence:.2f}, energy {weights.energy:.2f}, "
            f"danceability {weights.danceability:.2f}, acousticness {weights.acousticness:.2f}, "
            f"tempo x{weights.tempo_modifier:.2f}",
        ]
        if result.used_neutral_context:
            lines.append("   (context could not be interpreted, neutral weights used)")
        lines.extend([
            "",
            "Top {0} Recommendations:".format(len(result.recommendations)),
            "-" * 50,
        ])
        for i, rec in enumerate(result.recommendations, 1):
            lines.append(f"{i:2}. {rec.track_name}")
            lines.append(f"    Artists: {', '.join(rec.artist_names)}")
            lines.append(f"    Score: {rec.score:.4f}")
            lines.append(f"    Why: {rec.explanation}")
            lines.append(f"    {rec.reasoning}")
            lines.append(f"    Track ID: {rec.track_id}")
            lines.append("")
        return '\n'.join(lines)

    return result.to_json()


def invalid_references(references: List[str]) -> List[str]:
    """References that do not resolve to a well-formed track ID."""
    return [ref for ref in references if not validate_track_id(normalize_track_id(ref))]


def clear_caches(cache_dir: str = CACHE_DIR) -> int:
    """Delete cached API responses and interpreted contexts. Returns files deleted."""
    root = Path(cache_dir)
    return Cache(str(root)).clear() + Cache(str(root / "context")).clear()


def validate_environment() -> bool:
    """Check if required environment variables are set."""
    client_id = os.environ.get('SPOTIFY_CLIENT_ID')
    client_secret = os.environ.get('SPOTIFY_CLIENT_SECRET')

    if not client_id or not client_secret:
        print("Error: Spotify API credentials not found!", file=sys.stderr)
        print("", file=sys.stderr)
        print("Please set the following environment variables:", file=sys.stderr)
        print("  SPOTIFY_CLIENT_ID=your_client_id", file=sys.stderr)
        print("  SPOTIFY_CLIENT_SECRET=your_client_secret", file=sys.stderr)
        print("", file=sys.stderr)
        print("Get credentials at: https://developer.spotify.com/dashboard", file=sys.stderr)
        return False

    return True


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    configure_logging('DEBUG' if args.verbose else None)

    if args.clear_cache:
        logger.info("Cleared %d cached files", clear_caches())

    bad = invalid_references(args.references)
    if bad:
        print(f"Error: not a Spotify track URL, URI or ID: {', '.join(bad)}", file=sys.stderr)
        return 1

    # Validate environment
    if not validate_environment():
        return 1

    try:
        spotify = SpotifyClient(use_cache=not args.no_cache)
        interpreter = CachedContextInterpreter(
            ExampleContextInterpreter(),
            cache=None if args.no_cache else Cache(spotify.cache_dir / "context"),
        )
        engine = RecommendationEngine(catalog=spotify, interpreter=interpreter)

        result = engine.recommend(
            listener_id=args.listener,
            context_text=args.context,
            reference_track_ids=args.references,
            limit=args.num,
            exclude_track_ids=args.exclude,
        )

        output = format_output(result, args.format)

        if args.output:
            with open(args.output, 'w', encoding='utf-8') as f:
                f.write(output)
            print(f"Recommendations saved to: {args.output}")
        else:
            print(output)

        return 0

    except RecommendationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"Error: {str(e)}", file=sys.stderr)
        if args.verbose:
            logger.exception("Recommendation failed")
        return 1


if __name__ == '__main__':
    sys.exit(main())

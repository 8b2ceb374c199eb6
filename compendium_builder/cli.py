"""CLI for compendium-builder."""

import argparse
import logging
import sys

from compendium_builder.domain.errors import PackError
from compendium_builder.domain.models import BuildOptions, ExtractOptions
from compendium_builder.packs.compendium_pack import build_packs
from compendium_builder.packs.extractor import PackExtractor
from compendium_builder.project_config import load_project_config

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Configure root logging for a CLI run."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )


def _run_build(args: argparse.Namespace) -> int:
    config = load_project_config(args.config)
    options = BuildOptions(as_json=args.json)

    print(f"Building {len(config.packs)} packs from {config.source_dir}...")
    result = build_packs(config, options)
    for name, count in result.counts.items():
        print(f"  {name}: {count} documents")
    print(f"Built {result.packs_built} packs ({result.documents_written} documents)")
    print(f"Output: {result.output_dir}")
    return 0


def _run_extract(args: argparse.Namespace) -> int:
    config = load_project_config(args.config)
    options = ExtractOptions(
        pack=args.pack,
        host_config=args.host_config,
        disable_presort=args.disablePresort,
        log_warnings=args.logWarnings,
        deflate_items=not args.disableDeflate,
    )

    print(f"Extracting {args.pack}...")
    result = PackExtractor(config, options).run()
    for name, count in result.counts.items():
        print(f"  {name}: {count} documents")
    print(f"Extracted {result.documents_extracted} documents from {result.packs_extracted} packs")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='compendium-builder', description='Compendium pack build pipeline')
    parser.add_argument('--config', default='system.json', help='Project manifest (default: system.json)')
    parser.add_argument('--verbose', action='store_true', help='Enable debug logging')
    subparsers = parser.add_subparsers(dest='command')

    # build command
    build_cmd = subparsers.add_parser('build', help='Compile the source tree into pack files')
    build_cmd.add_argument('--json', action='store_true', help='Write each pack as one JSON array')

    # extract command
    extract_cmd = subparsers.add_parser('extract', help='Extract pack files into the source tree')
    extract_cmd.add_argument('pack', help="Pack directory name (e.g. spells.db) or 'all'")
    extract_cmd.add_argument('host_config', nargs='?', default=None,
                             help='Host config with dataPath to read a live datastore')
    extract_cmd.add_argument('--disablePresort', action='store_true', help='Keep embedded item order')
    extract_cmd.add_argument('--disableDeflate', action='store_true', help='Never deflate embedded items')
    extract_cmd.add_argument(
        '--logWarnings', action=argparse.BooleanOptionalAction, default=True,
        help='Log content warnings (default: on)',
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    commands = {'build': _run_build, 'extract': _run_extract}
    command = commands.get(args.command)
    if command is None:
        parser.print_help()
        return 1

    try:
        return command(args)
    except PackError as e:
        logger.debug("Run failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())

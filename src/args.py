"""Argument parsing functionality for depgraph."""

import argparse
from constants import Constants


def build_parser():
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="depgraph",
        description=(
            "depgraph - Puppetfile dependency tree and conflict analyzer"
        ),
        add_help=True,
    )

    parser.add_argument("-f", "--file",
                        dest="PUPPETFILE",
                        help="Path to the Puppetfile (default: ./Puppetfile)",
                        action="store", type=str,
                        default=Constants.PUPPETFILE)
    parser.add_argument("--view",
                        dest="VIEW",
                        help="Output view: tree, list, conflicts or upgrade (default: tree)",
                        action="store", type=str.lower,
                        choices=Constants.VIEWS,
                        default="tree")
    parser.add_argument("-o", "--output",
                        dest="OUTPUT",
                        help="Path to JSON output file",
                        action="store",
                        type=str)
    parser.add_argument("-c", "--config",
                        dest="CONFIG",
                        help="Path to YAML configuration file",
                        action="store",
                        type=str)
    parser.add_argument("--concurrency",
                        dest="CONCURRENCY",
                        help="Number of sibling dependencies expanded concurrently (default: 1)",
                        action="store",
                        type=int)
    parser.add_argument("--max-depth",
                        dest="MAX_DEPTH",
                        help=f"Maximum tree depth (default: {Constants.MAX_DEPTH})",
                        action="store",
                        type=int)
    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level",
                        action="store",
                        type=str,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        default='WARNING')
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)
    parser.add_argument("--error-on-conflicts",
                        dest="ERROR_ON_CONFLICTS",
                        help="Exit with a non-zero status code if conflicts are found.",
                        action="store_true")
    parser.add_argument("--apply",
                        dest="APPLY",
                        help="Write the upgrade plan back to the Puppetfile (upgrade view only).",
                        action="store_true")
    parser.add_argument("-q", "--quiet",
                        dest="QUIET",
                        help="Do not output to console.",
                        action="store_true")
    return parser


def parse_args(argv=None):
    """Parses the arguments passed to the program."""
    return build_parser().parse_args(argv)

#!/usr/bin/env python3
"""depgraph: resolve a Puppetfile into an annotated dependency tree."""

import asyncio
import logging
import os
import sys
from typing import Any

from args import parse_args
from constants import Constants, ExitCodes, load_config
from common.logging_utils import configure_logging, extra_context, is_debug_enabled, ENV_LOG_LEVEL
from manifest.puppetfile import parse_file
from planning.upgrade import apply_upgrades_to_content, create_upgrade_plan, generate_upgrade_summary
from registry.provider import RegistryProvider
from resolution import DependencyResolver, ResolverConfig, find_conflicts
from resolution.render import export_json, generate_conflicts_text, generate_list_text, generate_tree_text
from versioning.names import normalize_module_name

logger = logging.getLogger(__name__)


def _setup_logging(args: Any) -> None:
    """Configure logging based on CLI arguments.

    Args:
        args: Parsed CLI arguments.
    """
    if getattr(args, "LOG_LEVEL", None):
        os.environ[ENV_LOG_LEVEL] = str(args.LOG_LEVEL).upper()

    configure_logging()

    level_name = str(getattr(args, "LOG_LEVEL", "INFO")).upper()
    logging.getLogger().setLevel(getattr(logging, level_name, logging.INFO))

    log_file = getattr(args, "LOG_FILE", None)
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
        logging.getLogger().addHandler(file_handler)
        logger.info("Logging to file: %s", log_file)


def _emit(args: Any, text: str) -> None:
    if not getattr(args, "QUIET", False):
        sys.stdout.write(text)
        if not text.endswith("\n"):
            sys.stdout.write("\n")


def _apply_upgrades(path: str, plan) -> int:
    """Rewrite upgradeable pins in place; returns an exit code."""
    if not plan.total_upgradeable:
        logger.info("Nothing to upgrade in %s.", path)
        return ExitCodes.SUCCESS.value
    try:
        with open(path, "r", encoding="utf-8") as f:
            content = f.read()
        with open(path, "w", encoding="utf-8") as f:
            f.write(apply_upgrades_to_content(content, plan))
    except OSError as e:
        logging.error("Puppetfile couldn't be updated: %s", e)
        return ExitCodes.FILE_ERROR.value
    logger.info("Applied %d upgrade(s) to %s.", plan.total_upgradeable, path)
    return ExitCodes.SUCCESS.value


async def run(args: Any) -> int:
    """Run one analysis and return the process exit code."""
    try:
        parsed = parse_file(args.PUPPETFILE)
    except OSError as e:
        logging.error("Puppetfile couldn't be read: %s", e)
        return ExitCodes.FILE_ERROR.value

    for error in parsed.errors:
        logging.warning("Puppetfile parse error: %s", error)
    if not parsed.modules:
        logging.warning("No modules found in %s.", args.PUPPETFILE)
        _emit(args, "No modules found.")
        return ExitCodes.SUCCESS.value

    registry_names = [normalize_module_name(d.name) for d in parsed.modules if not d.is_vcs]
    async with RegistryProvider() as provider:
        if registry_names and not await provider.prefetch(registry_names):
            logging.error("Connection to %s failed: no module metadata could be fetched.",
                          Constants.FORGE_BASE_URL)
            return ExitCodes.CONNECTION_ERROR.value

        if args.VIEW == "upgrade":
            plan = await create_upgrade_plan(parsed.modules, provider)
            _emit(args, generate_upgrade_summary(plan))
            if getattr(args, "APPLY", False):
                return _apply_upgrades(args.PUPPETFILE, plan)
            return ExitCodes.SUCCESS.value

        resolver = DependencyResolver(provider, ResolverConfig.from_args(args))
        nodes, ctx = await resolver.resolve_with_ledger(parsed.modules)

    if args.VIEW == "list":
        _emit(args, generate_list_text(nodes))
    elif args.VIEW == "conflicts":
        _emit(args, generate_conflicts_text(ctx.ledger))
    else:
        _emit(args, generate_tree_text(nodes))

    if args.OUTPUT:
        export_json(nodes, args.OUTPUT, ctx.ledger, parsed.errors)

    conflicts = find_conflicts(ctx.ledger)
    if is_debug_enabled(logger):
        logger.debug(
            "CLI finished",
            extra=extra_context(
                event="function_exit",
                component="cli",
                action="main",
                outcome="conflicts" if conflicts else "clean",
                count=len(nodes),
            ),
        )
    if conflicts and getattr(args, "ERROR_ON_CONFLICTS", False):
        logging.error("Dependency conflicts found.")
        return ExitCodes.EXIT_CONFLICTS.value
    return ExitCodes.SUCCESS.value


def main(argv=None) -> None:
    """Main function of the program."""
    args = parse_args(argv)
    _setup_logging(args)
    if getattr(args, "CONFIG", None) and load_config(args.CONFIG):
        logger.info("Loaded config from: %s", args.CONFIG)
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()

"""
Shared command-line plumbing for the maintenance scripts.
"""

import argparse
import logging
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence

from ..config import load_config, DEFAULT_CONFIG_PATH
from ..storage.database import ProviderDatabase

logger = logging.getLogger(__name__)


def build_parser(description: str) -> argparse.ArgumentParser:
    """
    Argument parser with the flags every maintenance script accepts.

    Scripts are dry runs unless --apply is given.
    """
    parser = argparse.ArgumentParser(description=description)
    parser.add_argument("--apply", action="store_true", help="Write changes (default is a dry run)")
    parser.add_argument("--db", help="SQLite database path (overrides database.path in config)")
    parser.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="Configuration file path")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser


def setup_logging(log_level: str, log_name: str):
    """Log to the console and to logs/<log_name>.log."""
    Path("logs").mkdir(exist_ok=True)

    logging.basicConfig(
        level=getattr(logging, log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(f"logs/{log_name}.log")
        ]
    )


def load_script_context(args: argparse.Namespace, log_name: str):
    """
    Configure logging, load configuration and open the database.

    Returns:
        Tuple of (config, database)
    """
    setup_logging(args.log_level, log_name)
    config = load_config(args.config)
    database = ProviderDatabase(args.db or config["database"]["path"])

    mode = "APPLY" if args.apply else "DRY RUN"
    logger.info(f"Running {log_name} ({mode}) against {database.db_path}")
    return config, database


def chunked(items: Sequence, size: int) -> Iterator[List]:
    """Yield consecutive slices of at most `size` items."""
    if size <= 0:
        raise ValueError("Chunk size must be positive")
    for start in range(0, len(items), size):
        yield list(items[start:start + size])


def print_summary(title: str, values: Dict, footer: Optional[str] = None):
    """Print a boxed key/value summary to stdout."""
    print("\n" + "=" * 50)
    print(title.upper())
    print("=" * 50)
    for key, value in values.items():
        label = key.replace("_", " ").capitalize()
        if isinstance(value, int) and not isinstance(value, bool):
            print(f"{label}: {value:,}")
        else:
            print(f"{label}: {value}")
    if footer:
        print(footer)
    print("=" * 50)

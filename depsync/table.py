"""
Repository table loading for depsync.

The table is a whitespace-separated text file. The first non-comment line
is a header naming the columns; column order is free.

    name      forge    host         owner   repo     path  lang  method    live
    foo       github   github.com   acme    foo      .     go    vendor    false
"""

import logging
from pathlib import Path
from typing import Iterable, List, Optional

from .domain import FIELDS, RepositoryDescriptor
from .exit_codes import ConfigurationError

logger = logging.getLogger(__name__)


def _significant_lines(lines: Iterable[str]):
    """Yield (line_number, cells) for non-blank, non-comment lines."""
    for number, line in enumerate(lines, start=1):
        stripped = line.strip()
        if not stripped or stripped.startswith('#'):
            continue
        yield number, stripped.split()


def parse_descriptors(lines: Iterable[str], source: str = "<table>") -> List[RepositoryDescriptor]:
    """
    Parse repository table lines into descriptors.

    Duplicate names keep the first occurrence; later rows are dropped
    with a warning.

    Args:
        lines: Table lines including the header
        source: Name used in error messages

    Returns:
        Descriptors in file order

    Raises:
        ConfigurationError: Missing header columns or short rows
    """
    rows = _significant_lines(lines)

    try:
        _, header = next(rows)
    except StopIteration:
        raise ConfigurationError(f"{source}: the repository table is empty")

    missing = [field for field in FIELDS if field not in header]
    if missing:
        raise ConfigurationError(f"{source}: missing columns: {', '.join(missing)}")

    descriptors: List[RepositoryDescriptor] = []
    seen = set()

    for number, cells in rows:
        if len(cells) < len(header):
            raise ConfigurationError(
                f"{source}:{number}: expected {len(header)} columns, found {len(cells)}"
            )

        descriptor = RepositoryDescriptor.from_row(dict(zip(header, cells)))
        if descriptor.name in seen:
            logger.warning(f"{source}:{number}: duplicate name {descriptor.name}; ignoring")
            continue

        seen.add(descriptor.name)
        descriptors.append(descriptor)

    return descriptors


def load_descriptors(path: Path) -> List[RepositoryDescriptor]:
    """Read the repository table at `path`."""
    path = Path(path)
    try:
        with open(path, 'r', encoding='utf-8') as f:
            return parse_descriptors(f, source=str(path))
    except OSError as e:
        raise ConfigurationError(f"failed to read the repository table {path}: {e}") from e


def select_descriptors(
    descriptors: Iterable[RepositoryDescriptor],
    name_filter: Optional[str] = None
) -> List[RepositoryDescriptor]:
    """Descriptors the name filter lets through (all of them without a filter)."""
    return [d for d in descriptors if not name_filter or d.name == name_filter]

"""Discovery and ordering of candidate scripts."""

import logging
from pathlib import Path
from typing import Iterable, List, Tuple, Union

from .errors import CatalogError
from .models import Candidate

LOG = logging.getLogger("PreconfigTester.Catalog")


def _split_name(filename: str) -> Tuple[str, str, str, bool]:
    """
    ``general_ALT2 (MGTS).bat`` -> ``("general", "ALT2", "(MGTS)", True)``.
    """
    stem = Path(filename).stem
    paren = stem.find("(")
    if paren >= 0:
        main, provider = stem[:paren].rstrip(), stem[paren:]
    else:
        main, provider = stem, ""
    base, _, variant = main.partition("_")
    return base, variant, provider, bool(provider)


def candidate_sort_key(filename: str) -> Tuple[str, str, bool, str]:
    """
    Hierarchical order: base name, then variant, then the plain file before
    its provider-specific versions, then provider.
    """
    base, variant, provider, has_provider = _split_name(filename)
    return base, variant, has_provider, provider


def discover_candidates(
    directory: Union[str, Path], extensions: Iterable[str] = (".bat", ".cmd")
) -> List[Candidate]:
    """
    Lists candidate scripts in ``directory`` in trial order.

    Raises:
        CatalogError: if the directory is missing or holds no candidates.
    """
    directory = Path(directory)
    if not directory.is_dir():
        raise CatalogError(
            f"Pre-configs directory not found: {directory}", {"directory": str(directory)}
        )

    wanted = {ext.lower() for ext in extensions}
    names = [
        entry.name
        for entry in directory.iterdir()
        if entry.is_file() and entry.suffix.lower() in wanted
    ]
    if not names:
        raise CatalogError(
            f"Pre-configs not found in {directory}",
            {"directory": str(directory), "extensions": sorted(wanted)},
        )

    names.sort(key=candidate_sort_key)
    LOG.debug(f"Found {len(names)} pre-configs in {directory}")
    return [Candidate(name=name, path=directory / name) for name in names]

"""
Default-data template loading.

The template is the tree every freshly loaded document is reconciled
against: keys missing from the document are filled in, existing keys are
left alone. It is read from a YAML (or JSON) file.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml

from sdk.profilesync_sdk.tree import Tree, is_tree

logger = logging.getLogger(__name__)


def _check_keys(tree: Tree, where: str) -> None:
    for key, value in tree.items():
        if not isinstance(key, (str, int)) or isinstance(key, bool):
            raise ValueError(f"Invalid key {key!r} at {where or '<root>'}: keys must be str or int")
        if isinstance(value, list):
            raise ValueError(f"Lists are not supported in trees (at {where}.{key})")
        if is_tree(value):
            _check_keys(value, f"{where}.{key}" if where else str(key))


def parse_default_data(text: str) -> Tree:
    """Parse a template document.

    Raises:
        ValueError: If the document is not a mapping or uses unsupported values
    """
    data = yaml.safe_load(text)
    if data is None:
        return {}
    if not is_tree(data):
        raise ValueError(f"Default data must be a mapping, got {type(data).__name__}")
    _check_keys(data, "")
    return data


def load_default_data(path: str | None) -> Tree:
    """Load the template from a file; no path means an empty template."""
    if not path:
        return {}

    data = parse_default_data(Path(path).read_text(encoding="utf-8"))
    logger.info("Default data loaded", extra={"path": path, "keys": len(data)})
    return data

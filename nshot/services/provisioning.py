"""
Provisioning generator for nshot - produces fresh identifier batches for distribution
"""

import logging
from pathlib import Path
from typing import Optional, Union

from ..config.settings import DEFAULT_CONFIG_PATH
from ..models.registry_snapshot import RegistrySnapshot
from ..utils.identifiers import generate_entry_id


logger = logging.getLogger(__name__)


def generate(n_entries: int, budget_per_entry: int) -> RegistrySnapshot:
    """
    Generate a batch of fresh identifiers

    Args:
        n_entries: Number of identifiers to create
        budget_per_entry: Fetch budget for every identifier, restored by reset

    Returns:
        RegistrySnapshot holding the new identifiers

    Raises:
        ValueError: If either argument is not a positive integer
        EntropyError: If the entropy source fails (not retried)
    """
    if not isinstance(n_entries, int) or isinstance(n_entries, bool) or n_entries <= 0:
        raise ValueError("n_entries must be a positive integer")
    if not isinstance(budget_per_entry, int) or isinstance(budget_per_entry, bool) or budget_per_entry <= 0:
        raise ValueError("budget_per_entry must be a positive integer")

    seen = set()
    entry_ids = []
    while len(entry_ids) < n_entries:
        entry_id = generate_entry_id()
        if entry_id in seen:
            continue
        seen.add(entry_id)
        entry_ids.append(entry_id)

    logger.info(f"Generated {n_entries} identifiers with budget {budget_per_entry}")
    return RegistrySnapshot(budget=budget_per_entry, entry_ids=entry_ids)


def write_snapshot(snapshot: RegistrySnapshot, path: Optional[Union[str, Path]] = None) -> Path:
    """
    Persist a snapshot for the run-time registry loader

    Args:
        snapshot: Snapshot to write
        path: Destination file; defaults to nshot_config.json in the working directory

    Returns:
        Path the snapshot was written to

    Raises:
        OSError: If the destination cannot be written
    """
    destination = Path(path) if path else Path(DEFAULT_CONFIG_PATH)
    written = snapshot.save(destination)
    logger.info(f"Wrote {len(snapshot)} identifiers to {written}")
    return written


def read_snapshot(path: Union[str, Path]) -> RegistrySnapshot:
    """
    Load a snapshot written by write_snapshot

    Raises:
        ConfigurationError: If the file is unreadable or malformed
    """
    snapshot = RegistrySnapshot.load(path)
    logger.debug(f"Read {len(snapshot)} identifiers from {path}")
    return snapshot

"""Seeded RNG factory for reproducible, parallel-safe simulations.

Uses NumPy's SeedSequence → PCG64 hierarchy to guarantee:
  - Statistical independence between per-cell streams
  - Bit-exact replay with the same master seed, in serial or parallel
  - No generator is ever shared between worker threads: each grid cell
    owns its stream, and a cell is processed by one worker at a time

References:
  - NumPy docs: numpy.random.SeedSequence
"""

from __future__ import annotations

from typing import Dict

import numpy as np


def create_rng_hierarchy(
    master_seed: int,
    n_cells: int,
) -> Dict[str, np.random.Generator]:
    """Create independent RNG streams for each grid cell + global operations.

    Streams created:
      - 'global':                  Initialisation and driver-level draws
      - 'cell_0' .. 'cell_{n-1}':  Per-cell streams for cohort ordering,
                                   reproduction and dispersal

    Args:
        master_seed: Master RNG seed (non-negative integer).
        n_cells: Number of active grid cells.

    Returns:
        Dictionary mapping stream names to numpy Generator instances.

    Example:
        >>> rngs = create_rng_hierarchy(42, n_cells=4)
        >>> rngs['cell_0'].random()  # reproducible
    """
    ss = np.random.SeedSequence(master_seed)
    child_seeds = ss.spawn(n_cells + 1)

    rngs: Dict[str, np.random.Generator] = {
        'global': np.random.Generator(np.random.PCG64(child_seeds[0])),
    }
    for i in range(n_cells):
        rngs[f'cell_{i}'] = np.random.Generator(
            np.random.PCG64(child_seeds[1 + i])
        )
    return rngs


def get_cell_rng(
    rngs: Dict[str, np.random.Generator],
    cell_number: int,
) -> np.random.Generator:
    """Get the RNG stream for a grid cell (by position in the cell list).

    Raises:
        KeyError: If the cell doesn't have a stream.
    """
    key = f'cell_{cell_number}'
    if key not in rngs:
        n_cells = sum(1 for k in rngs if k.startswith('cell_'))
        raise KeyError(
            f"No RNG stream for cell {cell_number}. "
            f"Hierarchy has {n_cells} cell streams."
        )
    return rngs[key]


def rng_state_snapshot(
    rngs: Dict[str, np.random.Generator],
) -> Dict[str, dict]:
    """Capture full RNG state for checkpointing.

    Returns:
        Dictionary mapping stream names to their bit-generator state dicts.
    """
    return {name: rng.bit_generator.state for name, rng in rngs.items()}


def restore_rng_state(
    rngs: Dict[str, np.random.Generator],
    states: Dict[str, dict],
) -> None:
    """Restore RNG state from a checkpoint snapshot.

    Raises:
        KeyError: If a stream in states doesn't exist in rngs.
    """
    for name, state in states.items():
        if name not in rngs:
            raise KeyError(f"Cannot restore RNG state for unknown stream '{name}'")
        rngs[name].bit_generator.state = state

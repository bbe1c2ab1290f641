"""
Difficulty progression: session streak -> (tier, chunk index).

The streak is the difficulty dial. The first three puzzles come from the
tutorial tier, the next five ramp through core-loop, and past that every
fifth puzzle is a harder spice puzzle while the baseline stays core-loop.
Chunk indices grow slowly (a new chunk every 2, 5, or 10 solves) to keep
fetch churn low.

The chunk index is not clamped here. An index past the last chunk simply
fails to load, and the session degrades to "no puzzle" instead of crashing.
"""

from puzzles.constants import (
    CORE_CHUNK_STEP,
    CORE_LOOP,
    RAMP_CHUNK_STEP,
    RAMP_STREAK,
    SPICE,
    SPICE_CHUNK_STEP,
    SPICE_PERIOD,
    SPICE_SLOT,
    TUTORIAL,
    TUTORIAL_STREAK,
)
from puzzles.models import ChunkRef


def resolve(streak: int) -> ChunkRef:
    """
    Pick the tier and chunk for the next puzzle.

    Table:
        streak < 3          tutorial, 0
        3 <= streak < 8     core-loop, (streak - 3) // 2
        streak >= 8, p = streak - 8:
            p % 5 == 4      spice, p // 10
            otherwise       core-loop, p // 5

    Args:
        streak: Consecutive full solves in the current session.

    Returns:
        ChunkRef(tier, chunk_index). Pure and deterministic.

    Example:
        >>> resolve(12)
        ChunkRef(tier='spice', chunk_index=0)
    """
    if streak < TUTORIAL_STREAK:
        return ChunkRef(TUTORIAL, 0)

    if streak < RAMP_STREAK:
        return ChunkRef(CORE_LOOP, (streak - TUTORIAL_STREAK) // RAMP_CHUNK_STEP)

    past_ramp = streak - RAMP_STREAK
    if past_ramp % SPICE_PERIOD == SPICE_SLOT:
        return ChunkRef(SPICE, past_ramp // SPICE_CHUNK_STEP)
    return ChunkRef(CORE_LOOP, past_ramp // CORE_CHUNK_STEP)

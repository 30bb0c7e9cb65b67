"""Context optimizers: decide when a conversation's context should be trimmed."""

from __future__ import annotations

import math
from typing import Protocol, runtime_checkable

from tandem.models import OptimizationInput, OptimizationResult

DEFAULT_MAX_TOKENS = 8000
TOKENS_PER_TURN = 150


@runtime_checkable
class ContextOptimizer(Protocol):
    """Protocol for context optimization collaborators."""

    async def optimize_context(self, data: OptimizationInput) -> OptimizationResult:
        """Return a truncation verdict for the described conversation."""
        ...


class HeuristicContextOptimizer:
    """Token-budget heuristic with a template summary.

    Relevance blends turn count (saturating at 20 turns) with token density
    (saturating at 200 tokens per turn), weighted 0.6 / 0.4.
    """

    def __init__(
        self,
        *,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        tokens_per_turn: int = TOKENS_PER_TURN,
    ) -> None:
        """Initialize with the fallback token budget and per-turn estimate."""
        if max_tokens <= 0 or tokens_per_turn <= 0:
            raise ValueError("max_tokens and tokens_per_turn must be positive")
        self.max_tokens = max_tokens
        self.tokens_per_turn = tokens_per_turn

    async def optimize_context(self, data: OptimizationInput) -> OptimizationResult:
        limit = data.max_tokens or self.max_tokens
        should_truncate = data.total_tokens > limit
        relevance = relevance_score(data.turn_count, data.total_tokens)
        if not should_truncate:
            return OptimizationResult(
                should_truncate=False,
                relevance_score=relevance,
                total_tokens=data.total_tokens,
            )

        tokens_to_remove = data.total_tokens - limit
        turns = math.ceil(tokens_to_remove / self.tokens_per_turn)
        return OptimizationResult(
            should_truncate=True,
            relevance_score=relevance,
            summary=_summary(turns, data.turn_count),
            total_tokens=data.total_tokens,
            tokens_to_remove=tokens_to_remove,
        )


def relevance_score(turn_count: int, total_tokens: int) -> float:
    """Score in [0, 1]; higher for longer, denser conversations."""
    turn_factor = min(1.0, turn_count / 20)
    density = total_tokens / max(1, turn_count)
    density_factor = min(1.0, density / 200)
    return turn_factor * 0.6 + density_factor * 0.4


def _summary(turns: int, total_turns: int) -> str:
    share = round(turns / total_turns * 100) if total_turns > 0 else 100
    return f"Summary of {turns} conversation turns ({share}% of context)."

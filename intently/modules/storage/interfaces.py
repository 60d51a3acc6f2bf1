"""Repository interfaces following Black Box Design principles."""
from typing import List, Protocol, Sequence

from ..domain import Intent, IntentFilter, IntentState, Strategy, StrategyFilter


class Repository(Protocol):
    """Persistence for strategies and their intents."""

    async def insert_strategy_and_intents(self, strategy: Strategy, intents: Sequence[Intent]) -> None:
        """
        Persist a strategy together with all of its intents.

        All-or-nothing: on failure nothing is written.

        Raises:
            RepositoryError: If the write fails
        """
        ...

    async def batch_update_intent_state(self, intent_ids: Sequence[str], state: IntentState) -> int:
        """
        Move the given intents to ``state`` in one atomic write.

        Returns:
            Number of intents updated

        Raises:
            RepositoryError: If the write fails
        """
        ...

    async def query_strategies(self, filter_opts: StrategyFilter) -> List[Strategy]:
        """Strategies matching the filter, oldest first."""
        ...

    async def query_intents(self, filter_opts: IntentFilter) -> List[Intent]:
        """Intents matching the filter, in insertion order."""
        ...

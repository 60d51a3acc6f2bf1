import json
import logging
from typing import List, Sequence

import redis.asyncio as redis

from ..domain import Intent, IntentFilter, IntentState, Strategy, StrategyFilter
from ..errors import RepositoryError

logger = logging.getLogger(__name__)

STRATEGIES_ALL_KEY = "strategies:all"
INTENTS_ALL_KEY = "intents:all"
INTENT_STATE_KEY = "intents:state"


class RedisRepository:
    def __init__(self, redis_client):
        """
        Initialize repository.

        Args:
            redis_client: Async Redis client

        Key layout:
            strategy:{id}                  strategy JSON
            strategies:creator:{creator}   strategy IDs, insertion order
            intent:{id}                    intent JSON (state excluded)
            intents:state                  hash intent ID -> state
            intents:strategy:{id}          intent IDs of one strategy
            intents:creator:{creator}      intent IDs of one creator
        """
        self.redis = redis_client

    async def insert_strategy_and_intents(self, strategy: Strategy, intents: Sequence[Intent]) -> None:
        """
        Store a strategy and its intents in a single MULTI/EXEC transaction.

        Logic:
        1. Queue strategy document and its indexes
        2. Queue every intent document, its state and indexes
        3. Execute atomically
        """
        if strategy.id is None:
            raise ValueError("strategy must be stamped before it is stored")

        pipe = self.redis.pipeline(transaction=True)

        pipe.set(f"strategy:{strategy.id}", json.dumps(strategy.to_dict()))
        pipe.rpush(STRATEGIES_ALL_KEY, strategy.id)
        pipe.rpush(f"strategies:creator:{strategy.creator_id}", strategy.id)

        intent_ids = []
        for intent in intents:
            document = intent.to_dict()
            document.pop("state")
            pipe.set(f"intent:{intent.id}", json.dumps(document))
            intent_ids.append(intent.id)

        if intent_ids:
            pipe.hset(INTENT_STATE_KEY, mapping={i.id: i.state.value for i in intents})
            pipe.rpush(INTENTS_ALL_KEY, *intent_ids)
            pipe.rpush(f"intents:strategy:{strategy.id}", *intent_ids)
            pipe.rpush(f"intents:creator:{strategy.creator_id}", *intent_ids)

        try:
            await pipe.execute()
        except redis.RedisError as e:
            raise RepositoryError(f"Insert strategy {strategy.id} with {len(intent_ids)} intents: {e}") from e

        logger.debug(f"Stored strategy {strategy.id} with {len(intent_ids)} intents")

    async def batch_update_intent_state(self, intent_ids: Sequence[str], state: IntentState) -> int:
        """
        Move intents to a new state.

        Unknown IDs and transitions the state machine forbids are skipped.
        The write itself is a single HSET.
        """
        if not intent_ids:
            return 0

        try:
            current = await self.redis.hmget(INTENT_STATE_KEY, list(intent_ids))
            updates = {}
            for intent_id, raw in zip(intent_ids, current):
                if raw is None:
                    logger.warning(f"Intent {intent_id} not found, state not updated")
                    continue
                if not IntentState.can_transition(IntentState(raw), state):
                    logger.warning(f"Intent {intent_id} cannot move from {raw} to {state.value}")
                    continue
                updates[intent_id] = state.value

            if updates:
                await self.redis.hset(INTENT_STATE_KEY, mapping=updates)
        except redis.RedisError as e:
            raise RepositoryError(f"Update state of {len(intent_ids)} intents to {state.value}: {e}") from e

        return len(updates)

    async def query_strategies(self, filter_opts: StrategyFilter) -> List[Strategy]:
        try:
            strategy_ids = await self._collect_ids(
                filter_opts.creator_ids, "strategies:creator", STRATEGIES_ALL_KEY
            )
            if filter_opts.strategy_ids:
                wanted = set(filter_opts.strategy_ids)
                strategy_ids = [i for i in strategy_ids if i in wanted]
            if not strategy_ids:
                return []

            documents = await self.redis.mget([f"strategy:{i}" for i in strategy_ids])
        except redis.RedisError as e:
            raise RepositoryError(f"Query strategies: {e}") from e

        return [Strategy.from_dict(json.loads(doc)) for doc in documents if doc]

    async def query_intents(self, filter_opts: IntentFilter) -> List[Intent]:
        try:
            if filter_opts.strategy_ids and not filter_opts.creator_ids:
                intent_ids = []
                for strategy_id in filter_opts.strategy_ids:
                    intent_ids.extend(await self.redis.lrange(f"intents:strategy:{strategy_id}", 0, -1))
            else:
                intent_ids = await self._collect_ids(
                    filter_opts.creator_ids, "intents:creator", INTENTS_ALL_KEY
                )
            if not intent_ids:
                return []

            documents = await self.redis.mget([f"intent:{i}" for i in intent_ids])
            states = await self.redis.hmget(INTENT_STATE_KEY, intent_ids)
        except redis.RedisError as e:
            raise RepositoryError(f"Query intents: {e}") from e

        intents = []
        for doc, state in zip(documents, states):
            if not doc:
                continue
            data = json.loads(doc)
            data["state"] = state or IntentState.CREATED.value
            intent = Intent.from_dict(data)
            if filter_opts.matches(intent):
                intents.append(intent)
        return intents

    async def _collect_ids(self, creator_ids: Sequence[str], prefix: str, all_key: str) -> List[str]:
        if not creator_ids:
            return list(await self.redis.lrange(all_key, 0, -1))

        ids: List[str] = []
        seen = set()
        for creator_id in creator_ids:
            for item in await self.redis.lrange(f"{prefix}:{creator_id}", 0, -1):
                if item not in seen:
                    seen.add(item)
                    ids.append(item)
        return ids

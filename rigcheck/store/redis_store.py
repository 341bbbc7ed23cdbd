"""Redis-backed catalog of compatibility rules and parts.

The HTTP layer reads the active rule set and resolves part ids from here
before calling the evaluator; the evaluator itself never touches storage.

Key layout:
  rigcheck:rules  — hash, rule id → CompatibilityRule JSON
  rigcheck:parts  — hash, part id → Part JSON

`InMemoryStore` offers the same API over dicts, for tests and for running
without Redis.
"""

from __future__ import annotations

import logging
import os
import uuid
from typing import Dict, Iterable, List, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from rigcheck.models.parts import Part
from rigcheck.models.rules import CompatibilityRule, RuleCreate, RuleUpdate

logger = logging.getLogger(__name__)

# ──────────────────────────────────────────────
# Configuration
# ──────────────────────────────────────────────

KEY_PREFIX = "rigcheck:"
RULES_KEY = f"{KEY_PREFIX}rules"
PARTS_KEY = f"{KEY_PREFIX}parts"
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")


# ──────────────────────────────────────────────
# Custom Exceptions
# ──────────────────────────────────────────────


class StoreError(Exception):
    """Base exception for catalog store errors."""


class StoreUnavailableError(StoreError):
    """Raised when the backing store is not connected or a call fails."""


class DuplicateRuleNumberError(StoreError):
    """Raised when a rule_number is already taken by another rule."""


# ──────────────────────────────────────────────
# Redis Store
# ──────────────────────────────────────────────


class CatalogStore:
    """Redis-backed rule and part catalog.

    `connect()` reports failure instead of raising, so the app can fall
    back to an in-memory store. Once in use, calls on an unavailable store
    raise StoreUnavailableError.
    """

    def __init__(self, redis_url: str = REDIS_URL) -> None:
        self._redis = None
        self._redis_url = redis_url
        self._available = False

    async def connect(self) -> bool:
        """Connect to Redis. Returns True if successful."""
        try:
            self._redis = aioredis.from_url(
                self._redis_url,
                decode_responses=True,
                socket_connect_timeout=3,
                socket_timeout=3,
            )
            await self._redis.ping()
            self._available = True
            logger.info("Catalog store connected: %s", self._redis_url)
            return True

        except (RedisError, OSError) as e:
            logger.warning("Redis unavailable: %s", e)
            self._available = False
            return False

    async def disconnect(self) -> None:
        """Close the Redis connection."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None
        self._available = False

    @property
    def available(self) -> bool:
        """Whether the store is connected and usable."""
        return self._available

    # ── Hash primitives (InMemoryStore swaps out _call) ──

    async def _hget(self, key: str, field: str) -> Optional[str]:
        return await self._call("hget", key, field)

    async def _hset(self, key: str, field: str, value: str) -> None:
        await self._call("hset", key, field, value)

    async def _hdel(self, key: str, field: str) -> int:
        return await self._call("hdel", key, field)

    async def _hvals(self, key: str) -> List[str]:
        return await self._call("hvals", key)

    async def _call(self, command: str, *args):
        if not self._available:
            raise StoreUnavailableError("Catalog store is not connected")
        try:
            return await getattr(self._redis, command)(*args)
        except RedisError as e:
            logger.warning("Redis %s failed: %s", command.upper(), e)
            raise StoreUnavailableError(f"Redis {command} failed: {e}") from e

    # ── Rules ──

    async def list_rules(self, active_only: bool = False) -> List[CompatibilityRule]:
        """All rules sorted by rule_number, optionally only active ones."""
        rules = [
            CompatibilityRule.model_validate_json(raw)
            for raw in await self._hvals(RULES_KEY)
        ]
        if active_only:
            rules = [r for r in rules if r.is_active]
        return sorted(rules, key=lambda r: r.rule_number)

    async def get_rule(self, rule_id: str) -> Optional[CompatibilityRule]:
        raw = await self._hget(RULES_KEY, rule_id)
        if raw is None:
            logger.debug("Rule miss: %s", rule_id)
            return None
        return CompatibilityRule.model_validate_json(raw)

    async def _check_rule_number(self, rule_number: int, rule_id: str) -> None:
        for existing in await self.list_rules():
            if existing.rule_number == rule_number and existing.id != rule_id:
                raise DuplicateRuleNumberError(
                    f"Rule number {rule_number} is already used by "
                    f"'{existing.name}'"
                )

    async def add_rule(self, rule: CompatibilityRule) -> CompatibilityRule:
        """Store a rule, assigning an id when it has none."""
        if not rule.id:
            rule = rule.model_copy(update={"id": uuid.uuid4().hex})
        await self._check_rule_number(rule.rule_number, rule.id)
        await self._hset(RULES_KEY, rule.id, rule.model_dump_json())
        logger.info("Stored rule #%d (%s)", rule.rule_number, rule.name)
        return rule

    async def create_rule(self, payload: RuleCreate) -> CompatibilityRule:
        return await self.add_rule(payload.to_rule(uuid.uuid4().hex))

    async def update_rule(
        self, rule_id: str, update: RuleUpdate
    ) -> Optional[CompatibilityRule]:
        """Apply a partial update. Returns None when the rule does not exist."""
        rule = await self.get_rule(rule_id)
        if rule is None:
            return None
        updated = update.apply(rule)
        await self._check_rule_number(updated.rule_number, rule_id)
        await self._hset(RULES_KEY, rule_id, updated.model_dump_json())
        logger.info("Updated rule #%d (%s)", updated.rule_number, updated.name)
        return updated

    async def delete_rule(self, rule_id: str) -> bool:
        deleted = await self._hdel(RULES_KEY, rule_id) > 0
        if deleted:
            logger.info("Deleted rule %s", rule_id)
        return deleted

    async def seed_rules(self, rules: Iterable[CompatibilityRule]) -> int:
        """Store `rules` only if the catalog has none yet. Returns count added."""
        if await self.list_rules():
            return 0
        count = 0
        for rule in rules:
            await self.add_rule(rule)
            count += 1
        logger.info("Seeded %d default rules", count)
        return count

    # ── Parts ──

    async def put_part(self, part: Part) -> Part:
        await self._hset(PARTS_KEY, part.id, part.model_dump_json())
        return part

    async def get_part(self, part_id: str) -> Optional[Part]:
        raw = await self._hget(PARTS_KEY, part_id)
        if raw is None:
            return None
        return Part.model_validate_json(raw)

    async def stats(self) -> dict:
        """Basic store stats."""
        if not self._available:
            return {"available": False, "rules": 0, "parts": 0}
        return {
            "available": True,
            "rules": len(await self._hvals(RULES_KEY)),
            "parts": len(await self._hvals(PARTS_KEY)),
        }


# ──────────────────────────────────────────────
# In-Memory Store (for tests / no Redis)
# ──────────────────────────────────────────────


class InMemoryStore(CatalogStore):
    """Dict-backed store for testing and fallback.

    Contents live only as long as the process.
    """

    def __init__(self) -> None:
        super().__init__()
        self._hashes: Dict[str, Dict[str, str]] = {}
        self._available = True

    async def connect(self) -> bool:
        self._available = True
        return True

    async def disconnect(self) -> None:
        self._hashes.clear()
        self._available = False

    async def _call(self, command: str, *args):
        if not self._available:
            raise StoreUnavailableError("Catalog store is not connected")
        key, *rest = args
        bucket = self._hashes.setdefault(key, {})
        if command == "hget":
            return bucket.get(rest[0])
        if command == "hset":
            bucket[rest[0]] = rest[1]
            return 1
        if command == "hdel":
            return 1 if bucket.pop(rest[0], None) is not None else 0
        if command == "hvals":
            return list(bucket.values())
        raise StoreError(f"Unsupported command: {command}")

"""Rule and part management gateway for administrators.

Routes under /compatibility/rules and /compatibility/parts. Access control
is left to whatever sits in front of this service.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, HTTPException

from rigcheck.models.parts import PART_FIELDS, Part
from rigcheck.models.rules import (
    RULE_TYPES,
    CompatibilityRule,
    RuleCreate,
    RuleUpdate,
)
from rigcheck.store.redis_store import CatalogStore, DuplicateRuleNumberError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/compatibility", tags=["Rule Management"])

# Set by app lifespan
_store: Optional[CatalogStore] = None


def set_store(store: Optional[CatalogStore]) -> None:
    """Called during app startup to inject the catalog store."""
    global _store
    _store = store


def _require_store() -> CatalogStore:
    if _store is None:
        raise HTTPException(status_code=503, detail="Catalog store not configured")
    return _store


# ──────────────────────────────────────────────
# Rules
# ──────────────────────────────────────────────


@router.get("/rules/schema")
async def rule_schema():
    """Rule types and the per-category fields the rule editor offers."""
    return {
        "rule_types": RULE_TYPES,
        "part_fields": {category.value: fields for category, fields in PART_FIELDS.items()},
    }


@router.get("/rules", response_model=List[CompatibilityRule])
async def list_rules(active_only: bool = False):
    """All rules in rule_number order."""
    return await _require_store().list_rules(active_only=active_only)


@router.post("/rules", response_model=CompatibilityRule, status_code=201)
async def create_rule(payload: RuleCreate):
    try:
        rule = await _require_store().create_rule(payload)
    except DuplicateRuleNumberError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    logger.info("Rule #%d created: %s", rule.rule_number, rule.name)
    return rule


@router.put("/rules/{rule_id}", response_model=CompatibilityRule)
async def update_rule(rule_id: str, update: RuleUpdate):
    """Partial update; toggling is_active or severity sends just that field."""
    try:
        rule = await _require_store().update_rule(rule_id, update)
    except DuplicateRuleNumberError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    if rule is None:
        raise HTTPException(status_code=404, detail="Rule not found")
    return rule


@router.delete("/rules/{rule_id}")
async def delete_rule(rule_id: str):
    if not await _require_store().delete_rule(rule_id):
        raise HTTPException(status_code=404, detail="Rule not found")
    return {"deleted": True, "id": rule_id}


# ──────────────────────────────────────────────
# Parts (for id resolution in /compatibility/check)
# ──────────────────────────────────────────────


@router.put("/parts/{part_id}", response_model=Part)
async def put_part(part_id: str, part: Part):
    """Register or replace a part. The path id wins over the body id."""
    return await _require_store().put_part(part.model_copy(update={"id": part_id}))


@router.get("/parts/{part_id}", response_model=Part)
async def get_part(part_id: str):
    part = await _require_store().get_part(part_id)
    if part is None:
        raise HTTPException(status_code=404, detail="Part not found")
    return part

"""Compatibility check gateway for the build editor.

Routes under /compatibility/*, called by the marketplace front-end as
users pick parts, and before a build is saved or published.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Union

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from rigcheck.engine.compatibility import (
    SelectionError,
    evaluate,
    has_blocking_issues,
)
from rigcheck.models.parts import category_slug
from rigcheck.models.rules import Issue
from rigcheck.store.redis_store import CatalogStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/compatibility", tags=["Compatibility"])

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
# Request / Response
# ──────────────────────────────────────────────

# A slot is a part id, an already-resolved part object, or empty
PartSlot = Union[None, int, str, Dict[str, Any]]


class CompatibilityCheckRequest(BaseModel):
    """Category slug → part id or Part-like object ({"specifications": {...}})."""

    parts: Dict[str, PartSlot] = Field(default_factory=dict)


class CompatibilityCheckResponse(BaseModel):
    issues: List[Issue] = Field(default_factory=list)
    has_errors: bool = False


async def _resolve_parts(parts: Dict[str, PartSlot]) -> Dict[str, Any]:
    """Swap part ids for stored parts; drop empty and unknown slots.

    Keys may be display names ("CPU Cooler"); they are reduced to slugs.
    """
    selection: Dict[str, Any] = {}
    for name, value in parts.items():
        slug = category_slug(name)
        if value is None or value == "":
            continue
        if isinstance(value, dict):
            selection[slug] = value
            continue
        part = await _require_store().get_part(str(value))
        if part is None:
            logger.info("Dropping unknown part %r selected for %s", value, slug)
            continue
        selection[slug] = part
    return selection


# ──────────────────────────────────────────────
# Routes
# ──────────────────────────────────────────────


@router.get("/health")
async def health():
    """Health check for monitoring."""
    return {
        "status": "healthy",
        "store_available": _store is not None and _store.available,
    }


@router.post("/check", response_model=CompatibilityCheckResponse)
async def check_compatibility(request: CompatibilityCheckRequest):
    """Check the selected parts against every active rule.

    Part ids are resolved from the catalog; fewer than two resolvable parts
    means no rule can apply, so no rules are loaded.
    """
    selection = await _resolve_parts(request.parts)
    if len(selection) < 2:
        return CompatibilityCheckResponse()

    rules = await _require_store().list_rules(active_only=True)
    try:
        issues = evaluate(selection, rules)
    except SelectionError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e

    logger.info(
        "Compatibility check: %d parts, %d rules, %d issues",
        len(selection), len(rules), len(issues),
    )
    return CompatibilityCheckResponse(
        issues=issues,
        has_errors=has_blocking_issues(issues),
    )

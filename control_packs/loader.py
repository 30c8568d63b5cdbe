"""Criterion catalog loader: reads and validates the RGAA criteria pack.

Usage:
    from control_packs.loader import load_catalog
    catalog = load_catalog()
    criterion = catalog.lookup("1.1")

The catalog is loaded once per path for the life of the process and is
immutable afterwards.  It is passed explicitly to the evaluator and the
aggregator; nothing downstream reads module state.
"""
from __future__ import annotations

import json
import os
import threading
from dataclasses import dataclass, field
from typing import Any

import structlog

from schemas.domain import Strategy
from schemas.taxonomy import ALL_THEMES, EVIDENCE_FLAGS, theme_of

logger = structlog.get_logger(__name__)

DEFAULT_CATALOG_PATH = os.path.join(
    os.path.dirname(os.path.abspath(__file__)), "rgaa", "v4.1", "criteria.json",
)


class CatalogError(Exception):
    """The criteria pack is missing or malformed.  Fatal at startup."""


# ══════════════════════════════════════════════════════════════════
#  Catalog types
# ══════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Criterion:
    id: str
    title: str
    theme: str
    strategy: Strategy
    external_rule_ids: frozenset[str]
    evidence_flag_ids: frozenset[str]
    notes: str = ""
    wcag: tuple[str, ...] = ()
    # Published for evidence extractors (generic labels, file patterns...).
    heuristic_patterns: dict[str, tuple[str, ...]] = field(default_factory=dict, compare=False)
    alt_max_length: int | None = None

    @property
    def automated(self) -> bool:
        return self.strategy is not Strategy.MANUAL_ONLY


@dataclass(frozen=True)
class UncoveredTheme:
    id: str
    name: str
    manual_checklist: tuple[str, ...]

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "manualChecklist": list(self.manual_checklist)}


@dataclass(frozen=True)
class Catalog:
    version: str
    total_criteria: int
    criteria: tuple[Criterion, ...]
    covered_themes: tuple[str, ...] = ()
    uncovered_themes: tuple[UncoveredTheme, ...] = ()
    _index: dict[str, Criterion] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_index", {c.id: c for c in self.criteria})

    def lookup(self, criterion_id: str) -> Criterion | None:
        return self._index.get(criterion_id)

    @property
    def covered_count(self) -> int:
        return len(self.criteria)

    @property
    def remaining_count(self) -> int:
        return max(self.total_criteria - self.covered_count, 0)

    def criteria_with_flag(self, flag: str) -> list[Criterion]:
        return [c for c in self.criteria if flag in c.evidence_flag_ids]


# ══════════════════════════════════════════════════════════════════
#  Parsing + validation
# ══════════════════════════════════════════════════════════════════

def _parse_criterion(raw: dict[str, Any]) -> Criterion:
    cid = raw.get("id")
    if not cid:
        raise CatalogError("Criterion without id in catalog")
    try:
        strategy = Strategy(raw.get("strategy"))
    except ValueError:
        raise CatalogError(
            f"Criterion {cid}: unknown strategy {raw.get('strategy')!r}"
        ) from None

    rule_ids = frozenset(raw.get("external_rule_ids") or ())
    if strategy is not Strategy.MANUAL_ONLY and not rule_ids:
        raise CatalogError(f"Criterion {cid}: {strategy.value} requires external_rule_ids")

    theme = raw.get("theme") or theme_of(str(cid))
    if theme not in ALL_THEMES:
        raise CatalogError(f"Criterion {cid}: unknown theme {theme!r}")

    flags = frozenset(raw.get("evidence_flag_ids") or ())
    unknown = sorted(flags - EVIDENCE_FLAGS)
    if unknown:
        raise CatalogError(f"Criterion {cid}: unknown evidence flag(s) {', '.join(unknown)}")

    patterns = {
        key: tuple(values)
        for key, values in (raw.get("heuristic_patterns") or {}).items()
    }
    return Criterion(
        id=str(cid),
        title=raw.get("title", ""),
        theme=theme,
        strategy=strategy,
        external_rule_ids=rule_ids,
        evidence_flag_ids=flags,
        notes=raw.get("notes", ""),
        wcag=tuple(raw.get("wcag") or ()),
        heuristic_patterns=patterns,
        alt_max_length=raw.get("alt_max_length"),
    )


def parse_catalog(data: dict[str, Any]) -> Catalog:
    """Validate a decoded catalog document and build the immutable catalog."""
    version = data.get("version")
    if not version:
        raise CatalogError("Catalog has no version")

    raw_criteria = data.get("criteria")
    if not isinstance(raw_criteria, list) or not raw_criteria:
        raise CatalogError("Catalog criteria list is missing or empty")

    criteria = tuple(_parse_criterion(c) for c in raw_criteria)

    seen: set[str] = set()
    for c in criteria:
        if c.id in seen:
            raise CatalogError(f"Duplicate criterion id {c.id}")
        seen.add(c.id)

    total = int(data.get("total_criteria") or len(criteria))
    if total < len(criteria):
        raise CatalogError(
            f"total_criteria ({total}) is smaller than the {len(criteria)} catalogued criteria"
        )

    uncovered = tuple(
        UncoveredTheme(
            id=str(t["id"]),
            name=t["name"],
            manual_checklist=tuple(t.get("manual_checklist") or ()),
        )
        for t in data.get("uncovered_themes") or ()
    )

    return Catalog(
        version=str(version),
        total_criteria=total,
        criteria=criteria,
        covered_themes=tuple(data.get("covered_themes") or ()),
        uncovered_themes=uncovered,
    )


# ══════════════════════════════════════════════════════════════════
#  Cached loading
# ══════════════════════════════════════════════════════════════════

_CACHE: dict[str, Catalog] = {}
_CACHE_LOCK = threading.Lock()


def load_catalog(path: str | os.PathLike[str] | None = None) -> Catalog:
    """Load the catalog at *path* (bundled RGAA 4.1 pack by default).

    Idempotent: the first successful load per path is cached.
    """
    key = os.path.abspath(os.fspath(path) if path is not None else DEFAULT_CATALOG_PATH)
    with _CACHE_LOCK:
        cached = _CACHE.get(key)
        if cached is not None:
            return cached

        try:
            with open(key, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            raise CatalogError(f"Catalog file not found: {key}") from None
        except json.JSONDecodeError as exc:
            raise CatalogError(f"Catalog file is not valid JSON: {key} ({exc})") from exc
        except OSError as exc:
            raise CatalogError(f"Catalog file unreadable: {key} ({exc})") from exc

        if not isinstance(data, dict):
            raise CatalogError(f"Catalog root must be an object: {key}")

        catalog = parse_catalog(data)
        _CACHE[key] = catalog
        logger.info(
            "catalog_loaded",
            path=key,
            version=catalog.version,
            criteria=catalog.covered_count,
            total=catalog.total_criteria,
        )
        return catalog


def reset_catalog_cache() -> None:
    """Forget every cached catalog (tests only)."""
    with _CACHE_LOCK:
        _CACHE.clear()

"""Aggregate run guards.

Single flaky assets are tolerated by ingestion. The checks here catch
*systemic* breakage (a redesigned upstream page, a blocked scraper) and stop
the run before a broken snapshot is published:

Fatal (:class:`RunGuardError`):
    - fewer entities than ``min_entities``
    - the collaborator reports that its top-level listing parsed zero rows
    - hosted/total asset coverage below ``min_coverage``

Warnings (returned and logged):
    - ticket and odds URLs identical for an entity (usually a scraper picking
      the same <img> twice)
    - more than ``missing_fields_ratio`` of entities lack a required field
"""

from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional, Sequence

from .config.models import GuardConfig
from .errors import RunGuardError
from .ingest import CoverageReport

__all__ = ["check_run_guards"]

LOGGER = logging.getLogger(__name__)


def _duplicate_asset_warnings(
    entities: Sequence[Mapping[str, Any]],
    asset_fields: Mapping[str, str],
    id_field: str,
) -> List[str]:
    fields = list(asset_fields.values())
    if len(fields) < 2:
        return []
    warnings = []
    for entity in entities:
        urls = [entity.get(name) for name in fields]
        present = [url for url in urls if isinstance(url, str) and url]
        if len(present) > 1 and len(set(present)) < len(present):
            warnings.append(
                f"{id_field}={entity.get(id_field)} uses the same URL for {' and '.join(fields)}"
            )
    return warnings


def _missing_field_warning(
    entities: Sequence[Mapping[str, Any]],
    required: Sequence[str],
    ratio: float,
) -> Optional[str]:
    if not required or not entities:
        return None
    incomplete = sum(
        1 for entity in entities if any(entity.get(name) in (None, "") for name in required)
    )
    share = incomplete / len(entities)
    if share > ratio:
        return (
            f"{incomplete}/{len(entities)} entities ({share:.0%}) lack one of "
            f"{', '.join(required)}"
        )
    return None


def check_run_guards(
    entities: Sequence[Mapping[str, Any]],
    coverage: CoverageReport,
    config: Optional[GuardConfig] = None,
    *,
    rows: Optional[int] = None,
    asset_fields: Optional[Mapping[str, str]] = None,
    id_field: str = "gameNumber",
) -> List[str]:
    """Evaluate guards for a finished ingestion.

    Args:
        entities: Entities as scraped, before hosting rewrote their URLs
        coverage: Coverage from :func:`~LottoData.AssetHosting.ingest.host_entity_assets`
        config: Guard thresholds
        rows: Top-level rows parsed by the collaborator, if it reports them
        asset_fields: Kind -> field mapping used for the duplicate-URL check
        id_field: Identity field for messages

    Returns:
        Non-fatal warnings (already logged)

    Raises:
        RunGuardError: A fatal guard tripped.
    """
    config = config or GuardConfig()

    if len(entities) < config.min_entities:
        raise RunGuardError(
            f"only {len(entities)} entities built (minimum {config.min_entities})",
            guard="min_entities",
            details={"entities": len(entities), "minimum": config.min_entities},
        )
    if rows is not None and rows == 0:
        raise RunGuardError(
            "upstream listing parsed zero rows", guard="zero_rows", details={"rows": 0}
        )
    if coverage.ratio < config.min_coverage:
        raise RunGuardError(
            f"asset coverage {coverage.ratio:.0%} below {config.min_coverage:.0%} "
            f"({coverage.summary_line()})",
            guard="coverage",
            details={
                "ratio": coverage.ratio,
                "minimum": config.min_coverage,
                "hosted": coverage.hosted_total,
                "total": coverage.total,
            },
        )

    warnings = _duplicate_asset_warnings(
        entities, asset_fields or {"ticket": "ticketImageUrl", "odds": "oddsImageUrl"}, id_field
    )
    missing = _missing_field_warning(entities, config.required_fields, config.missing_fields_ratio)
    if missing:
        warnings.append(missing)
    for warning in warnings:
        LOGGER.warning(f"[guard] {warning}")
    return warnings

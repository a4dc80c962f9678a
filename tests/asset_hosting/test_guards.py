"""Aggregate run guards."""

from __future__ import annotations

import pytest

from LottoData.AssetHosting.config.models import GuardConfig
from LottoData.AssetHosting.errors import RunGuardError
from LottoData.AssetHosting.guards import check_run_guards
from LottoData.AssetHosting.ingest import CoverageReport


def _coverage(hosted: int, total: int) -> CoverageReport:
    report = CoverageReport()
    for i in range(total):
        report.add("ticket", hosted=i < hosted)
    return report


def _entity(n, ticket=None, odds=None, **extra):
    return {"gameNumber": n, "ticketImageUrl": ticket, "oddsImageUrl": odds, **extra}


def test_healthy_run_has_no_warnings() -> None:
    entities = [_entity(1, "https://x/1t.png", "https://x/1o.png")]
    assert check_run_guards(entities, _coverage(1, 1)) == []


def test_too_few_entities() -> None:
    with pytest.raises(RunGuardError) as excinfo:
        check_run_guards([], CoverageReport())
    assert excinfo.value.guard == "min_entities"


def test_zero_rows_reported_by_scraper() -> None:
    with pytest.raises(RunGuardError) as excinfo:
        check_run_guards([_entity(1)], _coverage(1, 1), rows=0)
    assert excinfo.value.guard == "zero_rows"


def test_low_coverage_is_fatal() -> None:
    with pytest.raises(RunGuardError) as excinfo:
        check_run_guards([_entity(1)], _coverage(1, 4), GuardConfig(min_coverage=0.5))
    assert excinfo.value.guard == "coverage"
    assert excinfo.value.details["hosted"] == 1
    assert excinfo.value.details["total"] == 4


def test_coverage_threshold_is_inclusive() -> None:
    check_run_guards([_entity(1)], _coverage(2, 4), GuardConfig(min_coverage=0.5))


def test_duplicate_ticket_and_odds_url_warns(caplog) -> None:
    entities = [_entity(5, "https://x/5.png", "https://x/5.png")]

    warnings = check_run_guards(entities, _coverage(1, 1))

    assert warnings == ["gameNumber=5 uses the same URL for ticketImageUrl and oddsImageUrl"]
    assert "[guard] gameNumber=5" in caplog.text


def test_missing_required_fields_warns() -> None:
    entities = [_entity(1, price=5), _entity(2), _entity(3, price="")]
    config = GuardConfig(required_fields=["price"], missing_fields_ratio=0.5)

    warnings = check_run_guards(entities, _coverage(1, 1), config)

    assert warnings == ["2/3 entities (67%) lack one of price"]


def test_missing_fields_under_ratio_is_quiet() -> None:
    entities = [_entity(1, price=5), _entity(2, price=6), _entity(3)]
    config = GuardConfig(required_fields=["price"], missing_fields_ratio=0.5)
    assert check_run_guards(entities, _coverage(1, 1), config) == []

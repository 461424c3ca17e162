from datetime import datetime, timedelta
from typing import List
from unittest.mock import MagicMock

from domain.models import (
    Location,
    OpeningFilter,
    SaveResult,
    SearchSettings,
    Severity,
    Venue,
)
from repositories.models import utcnow
from services.coffee_search import CoffeeSearchService
from services.overpass_client import OverpassError

LOCATION = Location(lat=-36.8485, lon=174.7633)
# a Wednesday evening
EVENING = datetime(2025, 1, 15, 18, 0)


class DummySession:
    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False


def _venues(count: int, age_days: float = 1, start_id: int = 1, opening_hours=None) -> List[Venue]:
    stamp = utcnow() - timedelta(days=age_days)
    return [
        Venue(
            source_type="node",
            source_id=start_id + i,
            latitude=-36.85,
            longitude=174.76,
            name=f"Cafe {start_id + i}",
            opening_hours=opening_hours,
            updated_at=stamp,
            distance_km=0.1 * (i + 1),
        )
        for i in range(count)
    ]


def _service(repo, client):
    return CoffeeSearchService(
        session_factory=DummySession,
        venues_repo=repo,
        overpass_client=client,
        max_cache_days=14,
        clock=lambda: EVENING,
    )


def _repo(*reads):
    repo = MagicMock()
    repo.find_nearby.side_effect = list(reads)
    repo.upsert_venues.return_value = SaveResult(success=True, saved_count=3)
    return repo


def test_thin_cache_triggers_fetch_write_and_final_read():
    final = _venues(5)
    repo = _repo(_venues(2), final)
    client = MagicMock()
    fetched = _venues(3, start_id=100)
    client.fetch_nearby.return_value = fetched

    outcome = _service(repo, client).search(LOCATION, SearchSettings(radius_m=2000, min_results=5, max_results=20))

    client.fetch_nearby.assert_called_once_with(2000, LOCATION)
    repo.upsert_venues.assert_called_once()
    assert repo.upsert_venues.call_args.args[1] == fetched
    assert repo.find_nearby.call_count == 2
    assert repo.find_nearby.call_args.args[1:] == (LOCATION, 2.0, 20)
    assert [a.venue for a in outcome.venues] == final
    assert outcome.fetched_count == 3
    assert outcome.last_status.severity == Severity.SUCCESS
    assert outcome.last_status.message == "Found 5 coffee shops nearby"


def test_enough_fresh_cache_skips_fetch():
    cached = _venues(10)
    repo = _repo(cached, cached)
    client = MagicMock()

    outcome = _service(repo, client).search(LOCATION, SearchSettings(min_results=5))

    client.fetch_nearby.assert_not_called()
    repo.upsert_venues.assert_not_called()
    assert repo.find_nearby.call_count == 2
    assert len(outcome.venues) == 10


def test_stale_cache_is_refetched():
    repo = _repo(_venues(10, age_days=20), _venues(4))
    client = MagicMock()
    client.fetch_nearby.return_value = _venues(4, start_id=50)

    outcome = _service(repo, client).search(LOCATION, SearchSettings(min_results=5))

    client.fetch_nearby.assert_called_once()
    assert len(outcome.venues) == 4


def test_nothing_cached_and_nothing_fetched_reports_no_results():
    repo = _repo([])
    client = MagicMock()
    client.fetch_nearby.return_value = []

    outcome = _service(repo, client).search(LOCATION, SearchSettings())

    repo.upsert_venues.assert_not_called()
    assert repo.find_nearby.call_count == 1
    assert outcome.venues == []
    assert outcome.last_status.severity == Severity.WARNING
    assert outcome.last_status.message == "No coffee shops found nearby"


def test_fetch_failure_without_cache_reports_error_then_no_results():
    repo = _repo([])
    client = MagicMock()
    client.fetch_nearby.side_effect = OverpassError("Overpass API request failed with status 504", status_code=504)

    outcome = _service(repo, client).search(LOCATION, SearchSettings())

    severities = [s.severity for s in outcome.statuses]
    assert severities == [Severity.LOADING, Severity.ERROR, Severity.WARNING]
    assert "504" in outcome.statuses[1].message
    assert outcome.venues == []


def test_fetch_failure_with_some_fresh_cache_still_returns_results():
    cached = _venues(2)
    repo = _repo(cached, cached)
    client = MagicMock()
    client.fetch_nearby.side_effect = OverpassError("timeout")

    outcome = _service(repo, client).search(LOCATION, SearchSettings(min_results=5))

    assert [a.venue for a in outcome.venues] == cached
    assert Severity.ERROR in [s.severity for s in outcome.statuses]
    assert outcome.last_status.severity == Severity.SUCCESS


def test_write_failure_does_not_abort_search():
    final = _venues(3)
    repo = _repo([], final)
    repo.upsert_venues.return_value = SaveResult(success=False, error="read-only database")
    client = MagicMock()
    client.fetch_nearby.return_value = _venues(3, start_id=10)

    outcome = _service(repo, client).search(LOCATION, SearchSettings())

    assert outcome.save_result.success is False
    assert [a.venue for a in outcome.venues] == final


def test_empty_final_read_reports_no_results():
    repo = _repo([], [])
    client = MagicMock()
    client.fetch_nearby.return_value = _venues(2)

    outcome = _service(repo, client).search(LOCATION, SearchSettings())

    assert outcome.venues == []
    assert outcome.last_status.message == "No coffee shops found nearby"


def test_final_read_error_ends_in_error_state():
    repo = MagicMock()
    repo.find_nearby.side_effect = [[], RuntimeError("connection reset")]
    client = MagicMock()
    client.fetch_nearby.return_value = _venues(2)

    outcome = _service(repo, client).search(LOCATION, SearchSettings())

    assert outcome.venues == []
    assert outcome.last_status.severity == Severity.ERROR


def test_open_now_filter_applies_after_annotation():
    final = _venues(1, opening_hours="24/7") + _venues(1, start_id=2, opening_hours="08:00-09:00") + _venues(1, start_id=3)
    repo = _repo(final, final)
    client = MagicMock()

    anytime = _service(repo, client).search(LOCATION, SearchSettings(min_results=3))
    repo.find_nearby.side_effect = [final, final]
    open_now = _service(repo, client).search(
        LOCATION, SearchSettings(min_results=3, opening_filter=OpeningFilter.OPEN_NOW)
    )

    assert [a.open_now for a in anytime.venues] == [True, False, None]
    assert [a.venue.source_id for a in open_now.venues] == [1]


def test_open_now_filter_with_nothing_open_warns():
    final = _venues(2, opening_hours="08:00-09:00")
    repo = _repo(final, final)

    outcome = _service(repo, MagicMock()).search(
        LOCATION, SearchSettings(min_results=2, opening_filter=OpeningFilter.OPEN_NOW)
    )

    assert outcome.venues == []
    assert outcome.last_status.severity == Severity.WARNING


def test_status_callback_receives_events_in_order():
    cached = _venues(6)
    repo = _repo(cached, cached)
    events = []

    _service(repo, MagicMock()).search(LOCATION, SearchSettings(), on_status=events.append)

    assert [e.severity for e in events] == [Severity.LOADING, Severity.SUCCESS]


class FakeOverpass:
    def __init__(self, venues):
        self.venues = venues
        self.calls = 0

    def fetch_nearby(self, radius_m, location):
        self.calls += 1
        return self.venues


def test_search_persists_fetched_venues_and_returns_them_sorted(session_factory):
    fetched = [
        Venue(source_type="node", source_id=1, latitude=-36.8585, longitude=174.7633, name="Far"),
        Venue(source_type="way", source_id=2, latitude=-36.8490, longitude=174.7633, name="Near"),
    ]
    overpass = FakeOverpass(fetched)
    service = CoffeeSearchService(
        session_factory=session_factory,
        overpass_client=overpass,
        clock=lambda: EVENING,
    )

    first = service.search(LOCATION, SearchSettings(min_results=2))
    second = service.search(LOCATION, SearchSettings(min_results=2))

    assert [a.venue.name for a in first.venues] == ["Near", "Far"]
    assert first.venues[0].venue.distance_km < first.venues[1].venue.distance_km
    assert [a.venue.name for a in second.venues] == ["Near", "Far"]
    # second search is served from the cache
    assert overpass.calls == 1


def test_min_results_above_max_results_is_capped():
    cached = _venues(3)
    repo = _repo(cached, cached)
    client = MagicMock()

    outcome = _service(repo, client).search(LOCATION, SearchSettings(min_results=5, max_results=3))

    client.fetch_nearby.assert_not_called()
    assert len(outcome.venues) == 3
    assert SearchSettings(min_results=5, max_results=3).effective_min_results == 3
    assert SearchSettings(min_results=5, max_results=20).effective_min_results == 5


def test_explicit_now_overrides_service_clock():
    final = _venues(1, opening_hours="08:00-09:00")
    repo = _repo(final, final)

    outcome = _service(repo, MagicMock()).search(
        LOCATION, SearchSettings(min_results=1), now=datetime(2025, 1, 15, 8, 30)
    )

    assert [a.open_now for a in outcome.venues] == [True]

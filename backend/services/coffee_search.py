"""
Coffee shop search flow.

Cache first: nearby venues come from the venue store. When too few of them
are fresh, Overpass is queried and the results are upserted. The store is
then read again so the caller always gets distance-sorted, de-duplicated
rows, which are annotated with their opening state and optionally filtered
to venues open right now.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, List, Optional

from db import SessionLocal
from domain.models import (
    Location,
    OpeningFilter,
    SearchOutcome,
    SearchSettings,
    Severity,
    StatusEvent,
    Venue,
)
from repositories.venues import VenuesRepository, filter_fresh
from services.opening_hours import annotate_open_now, filter_open_now
from services.overpass_client import OverpassClient, get_default_overpass_client
from settings import settings

StatusCallback = Callable[[StatusEvent], None]

NO_RESULTS_MESSAGE = "No coffee shops found nearby"


class CoffeeSearchService:
    def __init__(
        self,
        session_factory=None,
        venues_repo: Optional[VenuesRepository] = None,
        overpass_client: Optional[OverpassClient] = None,
        max_cache_days: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.session_factory = session_factory or SessionLocal
        self.venues_repo = venues_repo or VenuesRepository()
        self.overpass_client = overpass_client or get_default_overpass_client()
        self.max_cache_days = (
            max_cache_days if max_cache_days is not None else settings.CACHE_MAX_AGE_DAYS
        )
        self.clock = clock or datetime.now
        self.logger = logging.getLogger(__name__)

    def _collect_candidates(
        self,
        session,
        location: Location,
        search_settings: SearchSettings,
        outcome: SearchOutcome,
        report: Callable[[str, Severity], None],
    ) -> List[Venue]:
        """Fresh cached venues, topped up from Overpass when there are too few."""
        candidates: List[Venue] = []
        try:
            cached = self.venues_repo.find_nearby(
                session, location, search_settings.radius_km, search_settings.max_results
            )
            # the read is capped at max_results, so a higher threshold could never be met
            threshold = search_settings.effective_min_results
            candidates = filter_fresh(cached, self.max_cache_days)
            self.logger.info(
                "Cache: %d nearby, %d fresh (min_results=%d)",
                len(cached),
                len(candidates),
                threshold,
            )
            if len(candidates) >= threshold:
                return candidates

            fetched = self.overpass_client.fetch_nearby(search_settings.radius_m, location)
            outcome.fetched_count = len(fetched)
            if fetched:
                outcome.save_result = self.venues_repo.upsert_venues(session, fetched)
                if outcome.save_result.success:
                    self.logger.info("Coffee shops saved to database successfully")
                else:
                    self.logger.error(
                        "Failed to save coffee shops to database: %s", outcome.save_result.error
                    )
                candidates = fetched
        except Exception as exc:
            self.logger.exception("Search error")
            report(f"Error: {exc}", Severity.ERROR)
        return candidates

    def search(
        self,
        location: Location,
        search_settings: SearchSettings,
        on_status: Optional[StatusCallback] = None,
        now: Optional[datetime] = None,
    ) -> SearchOutcome:
        """
        Run one search and return annotated venues, nearest first.

        Opening hours are evaluated at `now`, which should be the user's local
        time (an aware datetime in their offset); the service clock is used
        when it is not given. Status messages are collected on the outcome
        and also pushed to on_status as they happen.
        """
        outcome = SearchOutcome()

        def report(message: str, severity: Severity) -> None:
            event = StatusEvent(message=message, severity=severity)
            outcome.statuses.append(event)
            if on_status is not None:
                on_status(event)

        report("Searching for coffee shops...", Severity.LOADING)

        with self.session_factory() as session:
            candidates = self._collect_candidates(session, location, search_settings, outcome, report)
            if not candidates:
                report(NO_RESULTS_MESSAGE, Severity.WARNING)
                return outcome

            # authoritative read: sorted by distance, no duplicates
            try:
                venues = self.venues_repo.find_nearby(
                    session, location, search_settings.radius_km, search_settings.max_results
                )
            except Exception as exc:
                self.logger.exception("Final venue read failed")
                report(f"Error: {exc}", Severity.ERROR)
                return outcome

        if not venues:
            report(NO_RESULTS_MESSAGE, Severity.WARNING)
            return outcome

        annotated = annotate_open_now(venues, now or self.clock())
        only_open = OpeningFilter(search_settings.opening_filter) == OpeningFilter.OPEN_NOW
        outcome.venues = filter_open_now(annotated, only_open)

        if only_open and not outcome.venues:
            report("No open coffee shops found nearby", Severity.WARNING)
        else:
            report(f"Found {len(outcome.venues)} coffee shops nearby", Severity.SUCCESS)
        return outcome

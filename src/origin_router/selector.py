"""Best-backend selection over the registry."""

from __future__ import annotations

from collections.abc import Callable

from origin_router.location import UserLocation
from origin_router.logging import get_logger, log_info, log_warning
from origin_router.registry import BackendRegistry
from origin_router.scoring import score_backend
from origin_router.settings import RouterSettings

_logger = get_logger(__name__)


class Selector:
    """Pick the highest-scoring backend whose breaker is not tripped.

    Ties keep the earliest registered backend. The selector only reads
    backend statistics, so a breaker that trips leaves the current selection
    in place until ``reselect`` runs again. The request pipeline reselects
    as soon as application traffic trips the selected backend, and every
    probe pass ends with a reselect.
    """

    def __init__(
        self,
        *,
        registry: BackendRegistry,
        settings: RouterSettings,
        location: Callable[[], UserLocation | None] = lambda: None,
        on_selected: Callable[[str], None] | None = None,
    ) -> None:
        self.registry = registry
        self.settings = settings
        self._location = location
        self._on_selected = on_selected
        self._selected: str | None = None

    @property
    def selected(self) -> str | None:
        return self._selected

    def clear(self) -> None:
        self._selected = None

    def reselect(self) -> str | None:
        """Re-score every eligible backend and update the current selection."""
        location = self._location()
        best_url: str | None = None
        best_score = float("-inf")
        for backend, stats in self.registry.entries():
            if stats.breaker.tripped:
                continue
            score = score_backend(
                backend,
                stats,
                weights=self.settings.scoring_weights,
                location=location,
                regional_routing=self.settings.enable_regional_routing,
            )
            if best_url is None or score > best_score:
                best_url = backend.url
                best_score = score

        if best_url is None:
            log_warning(
                _logger, "backend.none_available", previous=self._selected
            )
            self.clear()
            return None

        if best_url != self._selected:
            log_info(
                _logger,
                "backend.selected",
                url=best_url,
                score=round(best_score, 4),
                previous=self._selected,
            )
        self._selected = best_url
        if self._on_selected is not None:
            self._on_selected(best_url)
        return best_url

"""Host pipeline: registers filters once, then runs events through them in order."""

from __future__ import annotations

import logging
from typing import Iterable, Iterator, Sequence

from .config import PipelineConfig
from .errors import DblookupError, PipelineStartupError
from .events import Event
from .filters import LookupFilter
from .plugins import FilterLoader

LOG = logging.getLogger(__name__)


class Pipeline:
    """Sequential filter chain with fail-fast startup."""

    def __init__(self, filters: Sequence[LookupFilter]) -> None:
        self._filters = tuple(filters)
        self._started = False

    @classmethod
    def from_config(cls, config: PipelineConfig, loader: FilterLoader | None = None) -> Pipeline:
        loader = loader or FilterLoader()
        filters = [loader.create(section.type, section.options) for section in config.filters]
        return cls(filters)

    @property
    def filters(self) -> tuple[LookupFilter, ...]:
        return self._filters

    def start(self) -> None:
        """Register every filter; the first failure aborts startup."""

        registered: list[LookupFilter] = []
        for index, lookup in enumerate(self._filters):
            try:
                lookup.register()
            except DblookupError as exc:
                LOG.error(
                    "Pipeline startup aborted",
                    extra={"filter": lookup.config_name, "position": index},
                )
                for started in registered:
                    started.close()
                raise PipelineStartupError(
                    f"Filter #{index} ({lookup.config_name}) failed to register: {exc}"
                ) from exc
            registered.append(lookup)
        self._started = True
        LOG.info("Pipeline started", extra={"filters": len(self._filters)})

    def process(self, event: Event) -> Event:
        if not self._started:
            raise PipelineStartupError("Pipeline.start() must succeed before processing events")
        for lookup in self._filters:
            event = lookup.filter(event)
        return event

    def run(self, events: Iterable[Event]) -> Iterator[Event]:
        """Process events one at a time, preserving input order."""

        for event in events:
            yield self.process(event)

    def close(self) -> None:
        for lookup in self._filters:
            lookup.close()
        self._started = False

    def __enter__(self) -> Pipeline:
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


__all__ = ["Pipeline"]

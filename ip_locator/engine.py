"""LocatorEngine: drives a batch of IPs through cache, pacing, providers and clustering."""

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, List, Optional, Union

from .cache import LocationCache
from .clustering import cluster_locations
from .config import Config
from .errors import BatchInProgressError, ProviderError, ValidationError
from .models import Cluster, ClusterRefresh, LocationRecord, ResolutionOutcome
from .pacer import CallPacer
from .parsing import normalize_input, normalize_lines
from .providers import AUTO, ProviderChain, create_provider_chain
from .refresh import RefreshThrottle

logger = logging.getLogger(__name__)


class BatchState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"


@dataclass
class BatchRun:
    """All mutable state of one batch. Built fresh per call, never shared."""
    ips: List[str]
    pacer: CallPacer
    provider: str = AUTO
    bypass_cache: bool = False
    state: BatchState = BatchState.IDLE
    outcomes: List[ResolutionOutcome] = field(default_factory=list)
    locations: List[LocationRecord] = field(default_factory=list)
    clusters: List[Cluster] = field(default_factory=list)
    found: int = 0
    failed: int = 0
    cache_hits: int = 0
    elapsed_ms: int = 0

    @property
    def total(self) -> int:
        return len(self.ips)

    @property
    def live_calls(self) -> int:
        return self.pacer.live_calls

    def summary(self) -> dict:
        return {
            "state": self.state.value,
            "total": self.total,
            "found": self.found,
            "failed": self.failed,
            "live_calls": self.live_calls,
            "cache_hits": self.cache_hits,
            "elapsed_ms": self.elapsed_ms,
        }

    def to_dict(self) -> dict:
        return {
            "ips": list(self.ips),
            "outcomes": [o.to_dict() for o in self.outcomes],
            "clusters": [c.to_dict() for c in self.clusters],
            "summary": self.summary(),
        }


class LocatorEngine:
    """
    IP geolocation engine.

    Takes pasted IP text, resolves each address strictly in order (cache
    first, then a paced live call through the provider chain), records one
    outcome per IP without ever aborting on individual failures, and groups
    the successes into proximity clusters.
    """

    def __init__(self, config: Optional[Config] = None,
                 cache: Optional[LocationCache] = None,
                 chain: Optional[ProviderChain] = None,
                 on_refresh: Optional[Callable[[ClusterRefresh], None]] = None,
                 sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], float] = time.monotonic,
                 timer_factory=threading.Timer):
        self.config = config or Config()
        self.cache = cache if cache is not None else LocationCache(
            self.config.cache_db, self.config.cache_ttl_days
        )
        self.chain = chain or create_provider_chain(self.cache, timeout=self.config.request_timeout)
        if self.chain.cache is None:
            self.chain.cache = self.cache
        self.on_refresh = on_refresh
        self._sleep = sleep
        self._clock = clock
        self._timer_factory = timer_factory
        self._batch_lock = threading.Lock()

        self._check_provider(self.config.provider)
        logger.info(
            f"LocatorEngine ready: provider={self.config.provider}, "
            f"providers={','.join(self.chain.names)}"
        )

    @property
    def busy(self) -> bool:
        return self._batch_lock.locked()

    def _check_provider(self, provider: str):
        if provider != AUTO and provider not in self.chain.names:
            raise ValueError(f"Unknown provider '{provider}'")

    def _acquire(self):
        if not self._batch_lock.acquire(blocking=False):
            raise BatchInProgressError("A batch is already running")

    def locate(self, ip: str, provider: Optional[str] = None,
               use_cache: bool = True) -> LocationRecord:
        """
        Resolve a single IP. Raises ProviderError when it cannot be located and
        BatchInProgressError while a batch owns the provider timeline.
        """
        provider = provider or self.config.provider
        self._check_provider(provider)
        self._acquire()
        try:
            if use_cache:
                cached = self.cache.get(ip)
                if cached:
                    return cached
            return self.chain.resolve(ip, provider)
        finally:
            self._batch_lock.release()

    def clear_cache(self):
        """Empty the cache. Raises BatchInProgressError while a batch is writing to it."""
        self._acquire()
        try:
            self.cache.clear()
        finally:
            self._batch_lock.release()

    def locate_batch(self, ips: Union[str, Iterable[str]],
                     provider: Optional[str] = None,
                     bypass_cache: Optional[bool] = None,
                     on_outcome: Optional[Callable[[ResolutionOutcome, BatchRun], None]] = None) -> BatchRun:
        """
        Resolve a batch of IPs.

        `ips` is either raw pasted text or an iterable of lines; both are
        cleaned (bracket extraction, validation, dedup) before the run starts.
        Raises ValidationError if nothing usable remains and
        BatchInProgressError if another batch is still running.
        """
        if isinstance(ips, str):
            if not ips.strip():
                raise ValidationError("Please enter at least one IP address")
            cleaned = normalize_input(ips)
        else:
            cleaned = normalize_lines(ips)
        if not cleaned:
            raise ValidationError("No valid IP addresses found")
        provider = provider or self.config.provider
        self._check_provider(provider)

        self._acquire()
        try:
            run = BatchRun(
                ips=cleaned,
                pacer=CallPacer(self.config.pacing_ms, clock=self._clock, sleep=self._sleep),
                provider=provider,
                bypass_cache=self.config.bypass_cache if bypass_cache is None else bypass_cache,
            )
            self._run(run, on_outcome)
        finally:
            self._batch_lock.release()
        return run

    def _run(self, run: BatchRun, on_outcome):
        t0 = time.time()
        throttle = None
        if self.on_refresh is not None:
            throttle = RefreshThrottle(
                lambda focus: self._emit_refresh(run, focus),
                window_ms=self.config.refresh_throttle_ms,
                clock=self._clock,
                timer_factory=self._timer_factory,
            )

        run.state = BatchState.RUNNING
        logger.info(f"Batch started: {run.total} IPs (provider={run.provider})")
        for i, ip in enumerate(run.ips, 1):
            outcome = self._resolve_one(run, ip)
            run.outcomes.append(outcome)
            if outcome.ok:
                run.found += 1
                run.locations.append(outcome.location)
                if throttle is not None:
                    throttle.request(focus=run.found == 1)
            else:
                run.failed += 1
            if on_outcome is not None:
                on_outcome(outcome, run)
            if i % 10 == 0 or i == run.total:
                logger.info(f"Batch progress: {i}/{run.total} ({run.found} found, {run.failed} failed)")

        run.clusters = cluster_locations(run.locations, self.config.cluster_threshold)
        if throttle is not None and run.locations:
            throttle.flush()
        run.state = BatchState.COMPLETED
        run.elapsed_ms = int((time.time() - t0) * 1000)
        logger.info(
            f"Processed {run.total} IPs: {run.live_calls} API calls, "
            f"{run.cache_hits} from cache ({run.elapsed_ms}ms)"
        )
        logger.debug(f"Provider stats: {self.chain.stats}")

    def _resolve_one(self, run: BatchRun, ip: str) -> ResolutionOutcome:
        if not run.bypass_cache:
            cached = self.cache.get(ip)
            if cached:
                run.cache_hits += 1
                return ResolutionOutcome(ip=ip, location=cached, from_cache=True)
        else:
            logger.debug(f"Bypassing cache for {ip}")

        run.pacer.before_live_call()
        try:
            location = self.chain.resolve(ip, run.provider)
        except ProviderError as e:
            return ResolutionOutcome(ip=ip, error=e.message)
        except Exception as e:
            logger.error(f"Unexpected error resolving {ip}: {e}")
            return ResolutionOutcome(ip=ip, error=str(e))
        return ResolutionOutcome(ip=ip, location=location)

    def _emit_refresh(self, run: BatchRun, focus: bool):
        clusters = cluster_locations(list(run.locations), self.config.cluster_threshold)
        self.on_refresh(ClusterRefresh(clusters=clusters, focus=focus))

    def close(self):
        self.cache.close()

"""Periodic night-skip checks across every loaded world.

The scan runs as an APScheduler interval job on a background thread. It only
reads world state; every mutation (clock, weather, waking sleepers, chat) is
routed through ``ensure_main`` so it lands on the host's primary thread.
"""
from __future__ import annotations

import logging
import random
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, List, Optional

from apscheduler.schedulers.background import BackgroundScheduler

from . import eligibility
from .affinity import MainThreadExecutor
from .config import Settings, get_settings
from .errors import SkipStateError
from .exclusions import ExclusionRegistry, default_registry
from .messages import LogMessenger, render
from .quorum import QuorumSnapshot, excluded_occupants, sleeping_occupants
from .state import SkipStateTracker

logger = logging.getLogger(__name__)

SCAN_JOB_ID = "nightskip-scan"

_RANDOM = random.Random()  # nosec B311 - pseudo-RNG acceptable for chat template selection


def _label(world: Any) -> str:
    return str(getattr(world, "name", None) or getattr(world, "uid", world))


class NightSkipScheduler:
    """Decides when each world has enough sleepers to skip the night.

    ``accelerator_factory`` is called as ``factory(host, scheduler, world)``
    once a world starts skipping and must eventually call
    :meth:`reset_status` for that world.
    """

    def __init__(
        self,
        host: Any,
        accelerator_factory: Callable[[Any, "NightSkipScheduler", Any], Any],
        *,
        settings: Optional[Settings] = None,
        messenger: Any = None,
        player_manager: Any = None,
        executor: Any = None,
        exclusions: Optional[ExclusionRegistry] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._host = host
        self._accelerator_factory = accelerator_factory
        self._settings = settings or get_settings()
        self._messenger = messenger or LogMessenger()
        self._player_manager = player_manager
        self._executor = executor or MainThreadExecutor()
        self._exclusions = exclusions or default_registry(self._current_settings, player_manager)
        self._rng = rng or _RANDOM
        self._skipping = SkipStateTracker()
        self._tick_lock = threading.Lock()
        self._scheduler = BackgroundScheduler()
        self._started = False

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def exclusions(self) -> ExclusionRegistry:
        return self._exclusions

    @property
    def tracker(self) -> SkipStateTracker:
        return self._skipping

    def _current_settings(self) -> Settings:
        return self._settings

    # Lifecycle -----------------------------------------------------------

    def start(self) -> None:
        """Register the scan job and start the background scheduler."""

        if self._started:
            return
        self._scheduler.add_job(
            self.run_once,
            "interval",
            seconds=self._settings.interval,
            id=SCAN_JOB_ID,
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.start()
        self._started = True
        logger.info("Night-skip scan scheduled every %ss", self._settings.interval)

    def shutdown(self, wait: bool = False) -> None:
        if not self._started:
            return
        self._scheduler.shutdown(wait=wait)
        self._started = False

    def reload_settings(self, settings: Settings) -> None:
        """Swap in new settings and reschedule the scan if the interval changed."""

        previous = self._settings
        self._settings = settings
        if self._started and previous.interval != settings.interval:
            self._scheduler.reschedule_job(SCAN_JOB_ID, trigger="interval", seconds=settings.interval)
            logger.info("Night-skip scan rescheduled every %ss", settings.interval)

    # Scan loop -----------------------------------------------------------

    def run_once(self) -> None:
        """Evaluate every loaded world once."""

        if not self._tick_lock.acquire(blocking=False):
            logger.debug("Night-skip scan already in progress; skipping overlapping tick")
            return
        try:
            try:
                worlds = list(self._host.worlds())
            except Exception:
                logger.exception("Unable to list worlds for night-skip scan")
                return
            for world in worlds:
                try:
                    if self.validate_world(world):
                        self.check_world(world)
                except Exception:
                    logger.exception("Night-skip check failed for world %s", _label(world))
        finally:
            self._tick_lock.release()

    def validate_world(self, world: Any) -> bool:
        """Whether the scan should evaluate ``world`` this tick."""

        return eligibility.is_eligible(world, self._settings, self._skipping)

    def check_world(self, world: Any) -> None:
        """Report sleep progress for ``world`` and start a skip once quorum is met."""

        settings = self._settings
        occupants = list(world.players)
        sleeping = len(sleeping_occupants(occupants))

        if sleeping < 1:
            self._messenger.clear_bar(world)
            return

        snapshot = QuorumSnapshot(
            total=len(occupants),
            excluded=len(excluded_occupants(occupants, self._exclusions.is_excluded)),
            sleeping=sleeping,
            percentage=settings.percentage,
        )
        values = {
            "sleeping": snapshot.sleeping,
            "players": snapshot.effective,
            "needed": snapshot.needed,
            "world": world.name,
        }

        if snapshot.needed > 0:
            self._messenger.send_action_bar(
                world, render(settings.get_string("messages.actionbar.players-sleeping"), **values)
            )
            self._messenger.send_boss_bar(
                world,
                render(settings.get_string("messages.bossbar.players-sleeping.message"), **values),
                settings.get_string("messages.bossbar.players-sleeping.color", "BLUE"),
                snapshot.progress,
            )
            return

        self._messenger.send_action_bar(
            world, render(settings.get_string("messages.actionbar.night-skipping"), **values)
        )
        self._messenger.send_boss_bar(
            world,
            render(settings.get_string("messages.bossbar.night-skipping.message"), **values),
            settings.get_string("messages.bossbar.night-skipping.color", "GREEN"),
            1.0,
        )

        if not settings.skip_enabled:
            return

        if settings.instant_skip:
            logger.info("Instantly skipping the night in %s", _label(world))
            self.ensure_main(lambda: self._instant_skip(world))
            return

        if not self._skipping.mark(world.uid):
            raise SkipStateError(f"World {_label(world)} is already skipping the night")
        logger.info("Quorum reached in %s; accelerating the night", _label(world))
        self._start_accelerator(world)

    def _instant_skip(self, world: Any) -> None:
        world.time = self._settings.daytime_ticks
        self.clear_weather(world)
        self.reset_status(world)

    def _start_accelerator(self, world: Any) -> None:
        try:
            self._accelerator_factory(self._host, self, world)
        except Exception:
            self._skipping.clear(world.uid)
            raise

    # Public API ----------------------------------------------------------

    def is_night(self, world: Any) -> bool:
        return eligibility.is_night(world.time, self._settings)

    def is_blacklisted(self, world: Any) -> bool:
        return eligibility.is_blacklisted(world, self._settings)

    def is_skipping(self, world: Any) -> bool:
        return self._skipping.is_skipping(world.uid)

    def get_players(self, world: Any) -> int:
        """Occupants counted toward quorum, excluded occupants removed."""

        occupants = list(world.players)
        return QuorumSnapshot.capture(occupants, self._exclusions.is_excluded, self._settings.percentage).effective

    def get_sleeping_players(self, world: Any) -> List[Any]:
        return sleeping_occupants(world.players)

    def get_skip_amount(self, world: Any) -> int:
        occupants = list(world.players)
        return QuorumSnapshot.capture(occupants, self._exclusions.is_excluded, self._settings.percentage).target

    def get_needed(self, world: Any) -> int:
        occupants = list(world.players)
        return QuorumSnapshot.capture(occupants, self._exclusions.is_excluded, self._settings.percentage).needed

    def add_exclusion_provider(self, provider: Any) -> None:
        self._exclusions.register(provider)

    def remove_exclusion_provider(self, provider: Any) -> None:
        self._exclusions.unregister(provider)

    def force_skip(self, world: Any) -> bool:
        """Start skipping the night regardless of quorum, world list or clock.

        Returns ``False`` when the world is already skipping.
        """

        if not self._skipping.mark(world.uid):
            logger.warning("Ignoring forced skip for %s; night already skipping", _label(world))
            return False
        logger.info("Forcing night skip in %s", _label(world))
        self._start_accelerator(world)
        return True

    def reset_status(self, world: Any) -> bool:
        """Wake sleepers and return ``world`` to not-skipping after the reset delay.

        Concurrent calls for the same world schedule a single follow-up;
        ``False`` is returned when one is already pending.
        """

        self.wake_up_players(world)
        world_id = world.uid
        if not self._skipping.begin_reset(world_id):
            logger.debug("Reset already pending for %s", _label(world))
            return False
        if not self._started:
            logger.warning(
                "Reset of %s queued before the scheduler started; it runs once start() is called",
                _label(world),
            )
        run_date = datetime.now(timezone.utc) + timedelta(seconds=self._settings.reset_delay_seconds)
        self._scheduler.add_job(
            self._finish_reset,
            "date",
            run_date=run_date,
            args=[world_id],
            id=f"nightskip-reset-{world_id}",
            replace_existing=True,
            misfire_grace_time=None,
        )
        logger.info("Reset of %s scheduled in %.2fs", _label(world), self._settings.reset_delay_seconds)
        return True

    def _finish_reset(self, world_id: Any) -> None:
        if not self._skipping.finish_reset(world_id):
            return
        try:
            world = self._host.get_world(world_id)
        except Exception:
            logger.exception("Unable to resolve world %s after reset", world_id)
            return
        if world is None:
            logger.info("World %s unloaded before its reset completed", world_id)
            return
        self.ensure_main(lambda: self._announce_reset(world))

    def _announce_reset(self, world: Any) -> None:
        if self._player_manager is not None:
            self._player_manager.clear_cooldowns()
        templates = self._settings.get_string_list("messages.chat.night-skipped")
        if templates:
            self._messenger.broadcast(world, render(self._rng.choice(templates), world=world.name))
        logger.info("Night skipped in %s", _label(world))

    def wake_up_players(self, world: Any) -> None:
        def wake() -> None:
            for occupant in list(world.players):
                if occupant.sleeping:
                    occupant.wakeup()

        self.ensure_main(wake)

    def clear_weather(self, world: Any) -> None:
        settings = self._settings

        def clear() -> None:
            if world.storm and settings.clear_rain:
                world.storm = False
            if world.thundering and settings.clear_thunder:
                world.thundering = False

        self.ensure_main(clear)

    def ensure_main(self, task: Callable[[], None]) -> None:
        """Run ``task`` on the host's primary thread, inline when already there."""

        self._executor.ensure_main(task)


__all__ = ["NightSkipScheduler", "SCAN_JOB_ID"]

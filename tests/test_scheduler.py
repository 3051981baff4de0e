"""Tests for the night-skip scan loop, skip transitions and reset sequence."""
from __future__ import annotations

import copy
import logging
import random
import threading

import pytest
import yaml

from nightskip.affinity import MainThreadExecutor
from nightskip.config import DEFAULT_SETTINGS_PATH, Settings
from nightskip.errors import SkipStateError
from nightskip.exclusions import IGNORED_PERMISSION
from nightskip.scheduler import NightSkipScheduler

from fakes import FakeHost, FakePlayerManager, FakeWorld, RecordingMessenger, awake, sleeping

with DEFAULT_SETTINGS_PATH.open("r", encoding="utf-8") as _fh:
    BASE_SETTINGS = yaml.safe_load(_fh)


def make_settings(**night_skip):
    data = copy.deepcopy(BASE_SETTINGS)
    data["blacklisted-worlds"] = []
    data["night-skip"].update(night_skip)
    return Settings.from_dict(data)


class AcceleratorRecorder:
    def __init__(self):
        self.calls = []

    def __call__(self, host, scheduler, world):
        self.calls.append((host, scheduler, world))


class CountingProvider:
    def __init__(self):
        self.calls = 0

    def is_excluded(self, occupant):
        self.calls += 1
        return False


class BrokenWorld:
    def __init__(self, name="broken"):
        self.uid = name
        self.name = name
        self.time = 18000

    @property
    def players(self):
        raise RuntimeError("occupant list unavailable")


@pytest.fixture
def env(fake_scheduler):
    def build(worlds, settings=None, **kwargs):
        host = FakeHost(worlds)
        accelerator = AcceleratorRecorder()
        messenger = RecordingMessenger()
        manager = kwargs.pop("player_manager", FakePlayerManager())
        service = NightSkipScheduler(
            host,
            accelerator,
            settings=settings or make_settings(),
            messenger=messenger,
            player_manager=manager,
            rng=random.Random(0),
            **kwargs,
        )
        return service, accelerator, messenger, fake_scheduler[-1], manager

    return build


def test_quorum_met_starts_single_accelerator(env):
    """Ten occupants at 50% with five asleep starts exactly one skip."""
    world = FakeWorld(players=sleeping(5) + awake(5))
    service, accelerator, messenger, _, _ = env([world])

    service.run_once()
    service.run_once()
    service.run_once()

    assert service.is_skipping(world) is True
    assert len(accelerator.calls) == 1
    host, orchestrator, target = accelerator.calls[0]
    assert orchestrator is service
    assert target is world
    assert messenger.of("boss")[0][4] == 1.0


def test_quorum_short_reports_progress(env):
    """Four of five required sleepers reports 0.8 progress and no transition."""
    world = FakeWorld(players=sleeping(4) + awake(6))
    service, accelerator, messenger, _, _ = env([world])

    service.run_once()

    assert service.get_needed(world) == 1
    assert service.get_skip_amount(world) == 5
    boss = messenger.of("boss")
    assert len(boss) == 1
    assert boss[0][4] == pytest.approx(0.8)
    assert boss[0][3] == "BLUE"
    assert messenger.of("action")[0][2] == "4 players are sleeping, 1 more needed"
    assert service.is_skipping(world) is False
    assert accelerator.calls == []


def test_no_sleepers_clears_progress_without_computing(env):
    world = FakeWorld(players=awake(10))
    service, accelerator, messenger, _, _ = env([world])
    provider = CountingProvider()
    service.add_exclusion_provider(provider)

    service.run_once()

    assert messenger.calls == [("clear", world.name)]
    assert provider.calls == 0
    assert service.is_skipping(world) is False
    assert accelerator.calls == []


def test_skipping_disabled_only_reports(env):
    world = FakeWorld(players=sleeping(2))
    service, accelerator, messenger, _, _ = env([world], make_settings(enabled=False))

    service.run_once()

    assert messenger.of("action")
    assert accelerator.calls == []
    assert service.is_skipping(world) is False


def test_excluded_occupants_lower_the_target(env):
    ignored = awake(4, permissions={IGNORED_PERMISSION})
    world = FakeWorld(players=sleeping(3) + awake(3) + ignored)
    service, accelerator, _, _, _ = env([world])

    assert service.get_players(world) == 6
    assert service.get_skip_amount(world) == 3
    assert service.get_needed(world) == 0
    assert len(service.get_sleeping_players(world)) == 3

    service.run_once()
    assert len(accelerator.calls) == 1


def test_blacklisted_and_daytime_worlds_are_ignored(env):
    settings_data = copy.deepcopy(BASE_SETTINGS)
    settings_data["blacklisted-worlds"] = ["nether"]
    nether = FakeWorld("nether", players=sleeping(2))
    noon = FakeWorld("overworld", time=6000, players=sleeping(2))
    service, accelerator, messenger, _, _ = env([nether, noon], Settings.from_dict(settings_data))

    service.run_once()

    assert service.is_blacklisted(nether) is True
    assert service.is_night(noon) is False
    assert messenger.calls == []
    assert accelerator.calls == []


def test_instant_skip_sets_day_and_resets(env):
    world = FakeWorld(players=sleeping(2) + awake(1), storm=True, thundering=True)
    service, accelerator, messenger, fake, manager = env(
        [world], make_settings(**{"instant-skip": True, "clear-thunder": False})
    )

    service.run_once()

    assert world.time == service.settings.daytime_ticks
    assert world.storm is False
    assert world.thundering is True
    assert accelerator.calls == []
    assert service.is_skipping(world) is False
    assert all(not occupant.sleeping for occupant in world.players)

    assert fake.fire_date_jobs() == 1
    assert manager.cooldown_clears == 1
    assert len(messenger.of("chat")) == 1
    assert world.name in messenger.of("chat")[0][2]


def test_failing_world_does_not_abort_tick(env, caplog):
    good = FakeWorld("good", players=sleeping(5) + awake(5))
    service, accelerator, _, _, _ = env([BrokenWorld(), good])

    with caplog.at_level(logging.ERROR, logger="nightskip.scheduler"):
        service.run_once()

    assert "broken" in caplog.text
    assert len(accelerator.calls) == 1
    assert service.is_skipping(good) is True


def test_world_listing_failure_is_logged(env, caplog):
    service, _, _, _, _ = env([])

    def explode():
        raise RuntimeError("host offline")

    service._host.worlds = explode
    with caplog.at_level(logging.ERROR, logger="nightskip.scheduler"):
        service.run_once()

    assert "Unable to list worlds" in caplog.text


def test_failing_accelerator_unmarks_world(fake_scheduler, caplog):
    world = FakeWorld(players=sleeping(2))

    def accelerator(host, scheduler, target):
        raise RuntimeError("accelerator unavailable")

    service = NightSkipScheduler(FakeHost([world]), accelerator, settings=make_settings(), messenger=RecordingMessenger())

    with caplog.at_level(logging.ERROR, logger="nightskip.scheduler"):
        service.run_once()

    assert service.is_skipping(world) is False
    assert "accelerator unavailable" in caplog.text


def test_check_world_refuses_double_mark(env):
    world = FakeWorld(players=sleeping(2))
    service, accelerator, _, _, _ = env([world])
    service.tracker.mark(world.uid)

    with pytest.raises(SkipStateError):
        service.check_world(world)
    assert accelerator.calls == []


def test_force_skip_bypasses_checks(env):
    settings_data = copy.deepcopy(BASE_SETTINGS)
    settings_data["blacklisted-worlds"] = ["lobby"]
    world = FakeWorld("lobby", time=6000, players=awake(3))
    service, accelerator, _, _, _ = env([world], Settings.from_dict(settings_data))

    assert service.force_skip(world) is True
    assert service.is_skipping(world) is True
    assert service.force_skip(world) is False
    assert len(accelerator.calls) == 1


def test_reset_is_applied_once(env):
    """Repeated resets schedule one follow-up and announce once."""
    world = FakeWorld(players=sleeping(2))
    service, _, messenger, fake, manager = env([world])
    service.force_skip(world)

    assert service.reset_status(world) is True
    assert service.reset_status(world) is False
    assert len(fake.of("date")) == 1
    assert service.is_skipping(world) is True

    fake.fire_date_jobs()

    assert service.is_skipping(world) is False
    assert manager.cooldown_clears == 1
    assert len(messenger.of("chat")) == 1
    assert all(occupant.woken == 1 for occupant in world.players)


def test_concurrent_resets_schedule_one_follow_up(env):
    world = FakeWorld(players=awake(1))
    service, _, _, fake, _ = env([world], executor=MainThreadExecutor(thread_ident=-1))
    service.force_skip(world)
    barrier = threading.Barrier(6)
    outcomes = []

    def reset():
        barrier.wait()
        outcomes.append(service.reset_status(world))

    threads = [threading.Thread(target=reset) for _ in range(6)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert outcomes.count(True) == 1
    assert len(fake.of("date")) == 1


def test_reset_after_unload_is_quiet(env):
    world = FakeWorld(players=sleeping(1))
    service, _, messenger, fake, manager = env([world])
    service.force_skip(world)
    service.reset_status(world)
    service._host.unload(world)

    fake.fire_date_jobs()

    assert service.is_skipping(world) is False
    assert manager.cooldown_clears == 0
    assert messenger.of("chat") == []


def test_skip_can_restart_after_reset(env):
    world = FakeWorld(players=sleeping(5) + awake(5))
    service, accelerator, _, fake, _ = env([world])

    service.run_once()
    service.reset_status(world)
    fake.fire_date_jobs()
    for occupant in world.players[:5]:
        occupant.sleeping = True
    service.run_once()

    assert len(accelerator.calls) == 2


def test_mutations_from_background_thread_are_queued(env):
    """Waking sleepers off the primary thread waits for the host to drain the queue."""
    world = FakeWorld(players=sleeping(2))
    executor = MainThreadExecutor()
    service, _, _, _, _ = env([world], executor=executor)

    worker = threading.Thread(target=service.wake_up_players, args=(world,))
    worker.start()
    worker.join()

    assert all(occupant.sleeping for occupant in world.players)
    assert executor.run_pending() == 1
    assert all(not occupant.sleeping for occupant in world.players)


def test_exclusion_provider_can_be_removed(env):
    world = FakeWorld(players=sleeping(1) + awake(1))
    service, _, _, _, _ = env([world])

    class ExcludeAwake:
        def is_excluded(self, occupant):
            return not occupant.sleeping

    provider = ExcludeAwake()
    service.add_exclusion_provider(provider)
    assert service.get_players(world) == 1

    service.remove_exclusion_provider(provider)
    assert service.get_players(world) == 2


def test_reset_completes_when_world_lookup_fails(env, caplog):
    """A host error while resolving the world still returns it to not-skipping."""
    world = FakeWorld(players=sleeping(1))
    service, _, messenger, fake, manager = env([world])
    service.force_skip(world)
    service.reset_status(world)

    def lookup_fails(world_id):
        raise RuntimeError("world registry unavailable")

    service._host.get_world = lookup_fails
    with caplog.at_level(logging.ERROR, logger="nightskip.scheduler"):
        fake.fire_date_jobs()

    assert "world registry unavailable" in caplog.text
    assert service.is_skipping(world) is False
    assert service.tracker.is_resetting(world.uid) is False
    assert messenger.of("chat") == []
    assert manager.cooldown_clears == 0
    assert service.reset_status(world) is True


def test_reset_before_start_warns(env, caplog):
    world = FakeWorld(players=sleeping(1))
    service, _, _, fake, _ = env([world])

    with caplog.at_level(logging.WARNING, logger="nightskip.scheduler"):
        service.reset_status(world)

    assert "before the scheduler started" in caplog.text
    assert len(fake.of("date")) == 1


def test_reset_after_start_does_not_warn(env, caplog):
    world = FakeWorld(players=sleeping(1))
    service, _, _, _, _ = env([world])
    service.start()

    with caplog.at_level(logging.WARNING, logger="nightskip.scheduler"):
        service.reset_status(world)

    assert "before the scheduler started" not in caplog.text

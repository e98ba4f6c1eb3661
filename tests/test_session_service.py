import threading

import pytest

from conftest import HEVC_AAC, DeferredExecutor
from diveplay.config.common import STATE_FILE_NAME
from diveplay.domain import events
from diveplay.domain.exceptions import InvalidSelectionException, PermissionRevokedException
from diveplay.domain.media import PlayableSource
from diveplay.domain.session import AspectRatio, Phase, ShufflePolicy
from diveplay.services.resume_service import ResumeChoice
from diveplay.services.storage_service import (
    InMemoryFolderMemory,
    LocalStorageProvider,
    PermissionChecker,
)


class FixedRandom:
    def __init__(self, value):
        self.value = value
        self.calls = []

    def randrange(self, n):
        self.calls.append(n)
        return self.value


class ReadOnlyStorage(LocalStorageProvider):
    def open_replace(self, path):
        raise PermissionRevokedException(f"Write access denied: {path}")


class StaticPermission(PermissionChecker):
    def __init__(self, granted):
        self.granted = granted

    def has_access(self, root):
        return self.granted


class FakeTranscodingPipeline:
    """Pretends every file needed transcoding; outputs live in `out_dir`."""

    def __init__(self, out_dir):
        self.out_dir = out_dir
        self.out_dir.mkdir()

    def ensure_playable(self, source, on_progress=None, cancel_event=None):
        output = self.out_dir / f"{source.stem}.mp4"
        output.write_bytes(b"x")
        return PlayableSource(output, was_transcoded=True)


def names(recorded_events):
    return [e.name for e in recorded_events]


@pytest.fixture
def three(make_tree):
    return make_tree("a.mp4", "b.mp4", "c.mp4")


def test_opening_a_folder_without_progress_stays_idle(make_session, three, recorded_events):
    session = make_session()

    assert session.open_folder(three) is None

    state = session.state
    assert state.phase is Phase.IDLE
    assert state.current_item is None
    assert [i.relative_path for i in state.catalog] == ["a.mp4", "b.mp4", "c.mp4"]
    assert events.CATALOG_CHANGED in names(recorded_events)
    assert session.folder_memory.recall() == three


def test_select_loads_and_plays(make_session, three, render):
    session = make_session()
    session.open_folder(three)

    session.select(1)

    assert session.phase is Phase.PLAYING
    assert session.current_item.relative_path == "b.mp4"
    source, item, subtitles, start, autoplay = render.loaded[-1]
    assert source.path == three / "b.mp4"
    assert not source.was_transcoded
    assert (start, autoplay) == (0.0, True)


def test_select_without_autoplay_lands_paused(make_session, three):
    session = make_session()
    session.open_folder(three)

    session.select(session.catalog[2], autoplay=False)

    assert session.phase is Phase.PAUSED


def test_select_rejects_items_outside_the_catalog(make_session, three, make_tree):
    session = make_session()
    session.open_folder(three)

    with pytest.raises(InvalidSelectionException):
        session.select(3)


def test_phase_goes_through_loading(make_session, three, recorded_events):
    session = make_session()
    session.open_folder(three)
    session.select(0)

    phases = [e.data["phase"] for e in recorded_events if e.name == events.PHASE_CHANGED]
    assert phases == [Phase.LOADING, Phase.PLAYING]


def test_next_at_last_index_stops_without_loop(make_session, three):
    session = make_session()
    session.open_folder(three)
    session.select(2)

    session.next()

    assert session.phase is Phase.IDLE
    assert session.state.current_index == -1


def test_next_at_last_index_wraps_with_loop(make_session, three):
    session = make_session()
    session.open_folder(three)
    session.toggle_loop()
    session.select(2)

    session.next()

    assert session.state.current_index == 0
    assert session.phase is Phase.PLAYING


def test_shuffle_draws_from_the_whole_catalog(make_session, three):
    rng = FixedRandom(1)
    session = make_session(rng=rng)
    session.open_folder(three)
    session.toggle_shuffle()
    session.select(1)

    session.next()

    assert rng.calls == [3]
    assert session.state.current_index == 1


def test_shuffle_can_avoid_repeating_the_current_item(make_session, three):
    rng = FixedRandom(1)
    session = make_session(rng=rng, shuffle_policy=ShufflePolicy.AVOID_REPEAT)
    session.open_folder(three)
    session.toggle_shuffle()
    session.select(1)

    session.next()

    assert rng.calls == [2]
    assert session.state.current_index == 2


def test_prev_restarts_after_three_seconds(make_session, three, render):
    session = make_session()
    session.open_folder(three)
    session.select(2)
    session.report_position(5.0)

    session.prev()

    assert session.state.current_index == 2
    assert session.position == 0.0
    assert render.calls[-1] == ("seek", (0.0,))


def test_prev_goes_back_early_in_the_item(make_session, three):
    session = make_session()
    session.open_folder(three)
    session.select(2)
    session.report_position(1.0)

    session.prev()

    assert session.state.current_index == 1


def test_prev_wraps_from_the_first_item(make_session, three):
    session = make_session()
    session.open_folder(three)
    session.select(0)

    session.prev()

    assert session.state.current_index == 2


def test_pause_and_resume_only_toggle_between_playing_and_paused(make_session, three, render):
    session = make_session()
    session.open_folder(three)

    assert not session.pause()
    assert not session.resume()

    session.select(0)
    assert session.pause()
    assert session.phase is Phase.PAUSED
    assert not session.pause()
    assert session.resume()
    assert session.phase is Phase.PLAYING
    assert session.toggle_play()
    assert session.phase is Phase.PAUSED
    assert render.names()[-3:] == ["pause", "play", "pause"]


def test_ended_advances_to_the_next_item(make_session, three, recorded_events):
    session = make_session()
    session.open_folder(three)
    session.select(0)

    session.report_ended()

    assert session.state.current_index == 1
    phases = [e.data["phase"] for e in recorded_events if e.name == events.PHASE_CHANGED]
    assert phases[-3:] == [Phase.ENDED, Phase.LOADING, Phase.PLAYING]


def test_render_error_does_not_advance(make_session, three, recorded_events):
    session = make_session()
    session.open_folder(three)
    session.select(0)

    session.report_error("decoder said no")

    assert session.phase is Phase.ERROR
    assert session.state.current_index == 0
    assert recorded_events[-1].name == events.MEDIA_UNPLAYABLE


def test_missing_file_is_reported_unplayable(make_session, three, recorded_events):
    session = make_session()
    session.open_folder(three)
    (three / "b.mp4").unlink()

    session.select(1)

    assert session.phase is Phase.ERROR
    assert recorded_events[-1].name == events.MEDIA_UNPLAYABLE
    assert recorded_events[-1].data["item"].relative_path == "b.mp4"


def test_seek_is_clamped_to_duration(make_session, three):
    session = make_session()
    session.open_folder(three)
    session.select(0)
    session.report_duration(100.0)

    session.seek(250.0)
    assert session.position == 100.0

    session.seek(30.0)
    session.seek_relative(-10.0)
    assert session.position == 20.0
    session.seek_relative(-60.0)
    assert session.position == 0.0


def test_settings_commands(make_session, three):
    session = make_session()
    session.open_folder(three)

    assert session.set_volume(1.5).volume == 1.0
    assert session.step_volume(-0.05).volume == pytest.approx(0.95)
    assert session.set_speed(2.0).playback_rate == 2.0
    assert session.cycle_speed().playback_rate == 0.5
    assert session.cycle_speed().playback_rate == 0.75
    assert session.cycle_aspect_ratio().aspect_ratio is AspectRatio.CONTAIN
    assert session.toggle_subtitles().subtitles.enabled is False
    assert session.set_subtitle_font_size(200).subtitles.font_size == 72
    with pytest.raises(ValueError):
        session.set_speed(3.0)


def test_settings_changes_inside_the_throttle_window_are_both_saved(
    make_session, three, read_state
):
    session = make_session()
    session.open_folder(three)
    session.select(0)

    session.set_volume(0.3)
    assert read_state(three)["settings"]["volume"] == 0.3

    session.toggle_loop()
    saved = read_state(three)["settings"]
    assert saved["volume"] == 0.3
    assert saved["loop"] is True


def test_nothing_is_written_while_no_item_is_selected(make_session, three):
    session = make_session()
    session.open_folder(three)

    session.set_volume(0.5)
    session.change_folder()

    assert not (three / STATE_FILE_NAME).exists()


def test_position_writes_are_throttled_while_playing(make_session, three, read_state, clock):
    session = make_session()
    session.open_folder(three)
    session.select(0)

    session.report_position(1.0)
    assert read_state(three)["lastPosition"] == 1.0

    clock.advance(2.0)
    session.report_position(3.0)
    assert read_state(three)["lastPosition"] == 1.0

    clock.advance(3.5)
    session.report_position(6.5)
    assert read_state(three)["lastPosition"] == 6.5


def test_pause_writes_after_settle_delay(make_session, three, read_state, timers):
    session = make_session()
    session.open_folder(three)
    session.select(1)
    session.report_position(1.0)
    session.report_position(12.0)

    session.pause()
    assert read_state(three)["lastPosition"] == 1.0

    timers.fire_all()
    saved = read_state(three)
    assert saved["lastFile"] == "b.mp4"
    assert saved["lastPosition"] == 12.0


def test_close_flushes_latest_state_past_throttle(make_session, three, read_state, timers):
    session = make_session()
    session.open_folder(three)
    session.select(2)
    session.report_position(1.0)
    session.report_position(9.0)
    session.pause()

    session.close()

    assert read_state(three)["lastPosition"] == 9.0
    # The settle timer was cancelled; the flush already wrote the newest state.
    assert timers.pending == []


def test_persistence_failures_become_events(make_session, three, recorded_events):
    session = make_session(storage=ReadOnlyStorage())
    session.open_folder(three)
    session.select(0)

    session.set_volume(0.2)

    assert session.phase is Phase.PLAYING
    assert session.settings.volume == 0.2
    emitted = names(recorded_events)
    assert events.PERSISTENCE_FAILED in emitted
    assert events.PERMISSION_REVOKED in emitted


def test_listener_can_close_folder_when_access_is_lost(make_session, three, recorded_events):
    session = make_session(storage=ReadOnlyStorage())
    session.open_folder(three)
    session.select(0)

    def close_on_revoke(event):
        if event.name == events.PERMISSION_REVOKED:
            session.change_folder()

    session.add_listener(close_on_revoke)
    worker = threading.Thread(target=session.set_volume, args=(0.3,), daemon=True)
    worker.start()
    worker.join(3)

    assert not worker.is_alive()
    assert session.root is None
    assert session.phase is Phase.IDLE
    assert events.FOLDER_CLOSED in names(recorded_events)


def test_events_are_delivered_after_the_lock_is_released(make_session, three):
    session = make_session()
    session.open_folder(three)
    seen = []

    def read_from_other_thread(event):
        if event.name != events.PHASE_CHANGED:
            return
        reader = threading.Thread(target=lambda: seen.append(session.state.phase), daemon=True)
        reader.start()
        reader.join(3)
        assert not reader.is_alive()

    session.add_listener(read_from_other_thread)
    session.select(0)

    assert seen == [Phase.PLAYING, Phase.PLAYING]


def test_resume_offer_applies_settings_and_resumes(make_session, three, write_state, render):
    write_state(three, {"lastFile": "b.mp4", "lastPosition": 42.0, "settings": {"volume": 0.4}})
    session = make_session()

    offer = session.open_folder(three)

    assert offer is not None
    assert offer.item.relative_path == "b.mp4"
    assert session.settings.volume == 0.4
    assert session.phase is Phase.IDLE

    offer.resume()

    assert session.current_item.relative_path == "b.mp4"
    assert session.phase is Phase.PLAYING
    assert session.position == 42.0
    assert render.loaded[-1][3] == 42.0
    assert session.resume_offer is None


def test_resume_countdown_selects_the_saved_item(make_session, three, write_state, timers):
    write_state(three, {"lastFile": "c.mp4", "lastPosition": 7.0})
    session = make_session()
    offer = session.open_folder(three)

    timers.fire_all()

    assert offer.choice is ResumeChoice.RESUME
    assert session.current_item.relative_path == "c.mp4"


def test_dismiss_keeps_settings_and_stays_idle(make_session, three, write_state, timers):
    write_state(three, {"lastFile": "a.mp4", "lastPosition": 7.0, "settings": {"loop": True}})
    session = make_session()
    offer = session.open_folder(three)

    offer.dismiss()
    timers.fire_all()

    assert session.phase is Phase.IDLE
    assert session.settings.loop is True
    assert session.current_item is None


def test_start_over_in_a_new_folder_resets_everything(
    make_session, three, write_state, recorded_events
):
    write_state(three, {"lastFile": "a.mp4", "lastPosition": 7.0, "settings": {"volume": 0.1}})
    session = make_session()
    offer = session.open_folder(three)

    offer.choose_new_folder()

    assert session.root is None
    assert session.catalog == ()
    assert session.settings.volume == 1.0
    assert session.folder_memory.recall() is None
    assert recorded_events[-1].name == events.FOLDER_CLOSED


def test_stale_saved_item_gives_no_offer(make_tree, make_session, write_state):
    root = make_tree("new.mp4")
    write_state(root, {"lastFile": "old.mp4", "lastPosition": 3.0})
    session = make_session()

    assert session.open_folder(root) is None
    assert session.phase is Phase.IDLE


def test_unreadable_progress_gives_no_offer(make_session, three):
    (three / STATE_FILE_NAME).write_text("{{{{", encoding="utf-8")
    session = make_session()

    assert session.open_folder(three) is None


def test_superseded_load_is_discarded(make_session, three, render):
    executor = DeferredExecutor()
    session = make_session(executor=executor)
    session.open_folder(three)

    session.select(0)
    session.select(1)
    assert session.phase is Phase.LOADING
    executor.run_all()

    assert [entry[1].relative_path for entry in render.loaded] == ["b.mp4"]
    assert session.current_item.relative_path == "b.mp4"
    assert session.phase is Phase.PLAYING


def test_seek_while_loading_sets_the_start_position(make_session, three, render):
    executor = DeferredExecutor()
    session = make_session(executor=executor)
    session.open_folder(three)

    session.select(0)
    session.seek(15.0)
    executor.run_all()

    assert render.loaded[-1][3] == 15.0
    assert session.position == 15.0


def test_transcoded_output_is_released_when_superseded(make_session, three, tmp_path):
    session = make_session(pipeline=FakeTranscodingPipeline(tmp_path / "transcoded"))
    session.open_folder(three)

    session.select(0)
    first_output = tmp_path / "transcoded" / "a.mp4"
    assert first_output.exists()

    session.select(1)
    assert not first_output.exists()
    assert (tmp_path / "transcoded" / "b.mp4").exists()


def test_transcoding_phase_and_progress(make_session, make_tree, backend, pipeline, recorded_events):
    root = make_tree("movie.mkv")
    backend.probe_result = HEVC_AAC
    session = make_session(pipeline=pipeline)
    session.open_folder(root)

    session.select(0)

    progress = [e.data["percent"] for e in recorded_events if e.name == events.TRANSCODE_PROGRESS]
    assert progress == [0, 25, 50, 75, 100]
    phases = [e.data["phase"] for e in recorded_events if e.name == events.PHASE_CHANGED]
    assert phases == [Phase.LOADING, Phase.TRANSCODING, Phase.PLAYING]
    assert session.state.transcode_progress is None


def test_scan_degradation_is_an_event(make_session, make_tree, recorded_events):
    class LockedStorage(LocalStorageProvider):
        def list_children(self, directory):
            if directory.name == "locked":
                raise PermissionError("denied")
            return super().list_children(directory)

    root = make_tree("a.mp4", "locked/b.mp4")
    session = make_session(storage=LockedStorage())

    session.open_folder(root)

    degraded = [e for e in recorded_events if e.name == events.SCAN_DEGRADED]
    assert degraded[0].data["failed_dirs"] == (root / "locked",)
    assert [i.relative_path for i in session.catalog] == ["a.mp4"]


def test_reopen_remembered_checks_permission(make_session, three, recorded_events):
    denied = make_session(
        folder_memory=InMemoryFolderMemory(three), permission_checker=StaticPermission(False)
    )
    assert not denied.reopen_remembered()
    assert recorded_events[-1].name == events.PERMISSION_REVOKED
    assert denied.root is None

    granted = make_session(
        folder_memory=InMemoryFolderMemory(three), permission_checker=StaticPermission(True)
    )
    assert granted.reopen_remembered()
    assert granted.root == three

    assert not make_session().reopen_remembered()


def test_opening_another_folder_flushes_the_first(make_session, make_tree, read_state):
    first = make_tree("a.mp4", root_name="first")
    second = make_tree("z.mp4", root_name="second")
    session = make_session()
    session.open_folder(first)
    session.select(0)
    session.report_position(1.0)
    session.report_position(4.0)

    session.open_folder(second)

    assert read_state(first)["lastPosition"] == 4.0
    assert session.root == second
    assert session.current_item is None


def test_listener_errors_do_not_break_commands(make_session, three):
    session = make_session()

    def broken(event):
        raise RuntimeError("listener bug")

    session.add_listener(broken)
    session.open_folder(three)
    session.select(0)

    assert session.phase is Phase.PLAYING

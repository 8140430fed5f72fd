"""End-to-end recognition on synthetic coin columns.

Calibrate on rendered sample photos, then read whole columns through photo
mode and through the live session.
"""
import pytest

from coinreader.config.settings import Config
from coinreader.core.entities import CoinSide, LineValue, StabilizerState
from coinreader.services.live_session import LiveSession, STATUS_RECOGNISED
from coinreader.services.profile_store import ProfileStore
from coinreader.services.recognition_service import CoinRecognizer
from coinreader.services.template_manager import deserialize_template_set, serialize_template_set

from conftest import EXPECTED_FACES, ManualClock, compose_column, compose_live_frame

pytestmark = pytest.mark.integration


def inverted(faces):
    return [face.inverted() for face in faces]


def run_until_final(session, clock, frame, max_frames=12):
    for _ in range(max_frames):
        clock.advance(0.25)
        session.handle_frame(frame)
        session.wait_until_idle(60)
        if session.final_reading is not None:
            break
    return session.final_reading


class TestPhotoMode:
    """Single photos through detect, gate and classify."""

    def test_free_form_column(self, template_set, calibration):
        recognizer = CoinRecognizer(Config())
        results = recognizer.recognize(compose_column(), template_set, calibration=calibration)
        assert [r.side for r in results] == EXPECTED_FACES
        assert [r.line_value for r in results] == [
            LineValue.YIN if face is CoinSide.FRONT else LineValue.YANG for face in EXPECTED_FACES]

    def test_inverted_reading(self, template_set, calibration):
        recognizer = CoinRecognizer(Config())
        results = recognizer.recognize(compose_column(), template_set, calibration=calibration, invert_sides=True)
        assert [r.side for r in results] == inverted(EXPECTED_FACES)

    def test_other_arrangement(self, template_set, calibration):
        faces = [CoinSide.BACK, CoinSide.BACK, CoinSide.FRONT, CoinSide.BACK, CoinSide.FRONT, CoinSide.FRONT]
        results = CoinRecognizer(Config()).recognize(compose_column(faces), template_set, calibration=calibration)
        assert [r.side for r in results] == faces

    def test_slot_photo(self, live_calibrated):
        template_set, calibration = live_calibrated
        recognizer = CoinRecognizer(Config(jitter_offset=4.0))
        results = recognizer.recognize(compose_live_frame(), template_set, strategy="slots",
                                       calibration=calibration)
        assert [r.position for r in results] == [6, 5, 4, 3, 2, 1]
        assert [r.side for r in results] == EXPECTED_FACES

    def test_classification_is_repeatable(self, template_set, calibration):
        recognizer = CoinRecognizer(Config())
        regions = recognizer.detect(compose_column())
        first = recognizer.classify(regions, template_set, calibration)
        second = recognizer.classify(regions, template_set, calibration)
        assert [(r.side, r.confidence) for r in first] == [(r.side, r.confidence) for r in second]


class TestProfiles:

    def test_stored_profile_reads_the_same(self, temp_dir, front_samples, back_samples):
        config = Config(profiles_dir=str(temp_dir / "profiles"))
        recognizer = CoinRecognizer(config)
        template_set, _ = recognizer.templates.calibrate(front_samples, back_samples)

        store = ProfileStore(config.profiles_dir)
        store.save("kitchen", serialize_template_set(template_set))
        restored = deserialize_template_set(store.load_reference_template_set("kitchen"))

        results = recognizer.recognize(compose_column(), restored)
        assert [r.side for r in results] == EXPECTED_FACES


class TestLiveMode:

    def test_final_reading(self, real_config, live_calibrated):
        clock = ManualClock()
        session = LiveSession(real_config, clock=clock)
        snapshots = []
        session.add_listener(snapshots.append)
        try:
            session.update_profile(*live_calibrated)
            final = run_until_final(session, clock, compose_live_frame())
        finally:
            session.close()

        assert final is not None
        assert [r.side for r in final] == EXPECTED_FACES
        frame_indexes = [s.frame_index for s in snapshots if s.detections]
        assert frame_indexes == sorted(frame_indexes)
        assert snapshots[-1].status_text == STATUS_RECOGNISED
        assert snapshots[-1].state is StabilizerState.LOCKED

    def test_inverted_final_reading(self, real_config, live_calibrated):
        clock = ManualClock()
        session = LiveSession(real_config, clock=clock)
        try:
            session.update_profile(*live_calibrated)
            session.set_invert_sides(True)
            final = run_until_final(session, clock, compose_live_frame())
        finally:
            session.close()

        assert final is not None
        assert [r.side for r in final] == inverted(EXPECTED_FACES)

    def test_reading_survives_a_reset(self, real_config, live_calibrated):
        clock = ManualClock()
        session = LiveSession(real_config, clock=clock)
        try:
            session.update_profile(*live_calibrated)
            assert run_until_final(session, clock, compose_live_frame()) is not None
            session.reset()
            assert session.final_reading is None

            faces = inverted(EXPECTED_FACES)
            final = run_until_final(session, clock, compose_live_frame(faces))
        finally:
            session.close()

        assert final is not None
        assert [r.side for r in final] == faces

"""Command-line entry point for calibrating profiles and reading coins."""

import argparse
import json
import logging
import sys
from typing import List, Optional, Sequence, Tuple

from .config.settings import Config, load_config
from .core.entities import CoinResult
from .core.exceptions import ApplicationError
from .core.logging_config import configure_logging
from .services.live_session import LiveSession
from .services.profile_store import ProfileStore
from .services.recognition_service import CoinRecognizer
from .services.template_manager import deserialize_template_set, serialize_template_set
from .utils.image_utils import read_image

logger = logging.getLogger(__name__)


def parse_view_size(value: str) -> Tuple[float, float]:
    try:
        width, height = value.lower().split("x")
        size = (float(width), float(height))
    except ValueError:
        raise argparse.ArgumentTypeError(f"Expected WIDTHxHEIGHT, got {value!r}") from None
    if size[0] <= 0 or size[1] <= 0:
        raise argparse.ArgumentTypeError("View size must be positive")
    return size


def load_images(paths: Sequence[str]) -> List:
    images = []
    for path in paths:
        image = read_image(path)
        if image is None:
            logger.warning(f"Could not read image: {path}")
            continue
        images.append(image)
    return images


def print_results(results: Sequence[CoinResult], as_json: bool = False) -> None:
    if as_json:
        print(json.dumps([r.to_dict() for r in results], indent=2))
        return
    for r in results:
        print(f"  {r.position}: {r.side.value:<9} {r.confidence:.2f}  ({r.line_value.value})")


def cmd_calibrate(args, config: Config) -> int:
    recognizer = CoinRecognizer(config)
    front = load_images(args.front)
    back = load_images(args.back)
    template_set, calibration = recognizer.templates.calibrate(front, back)

    store = ProfileStore(config.profiles_dir)
    store.save(args.profile, serialize_template_set(template_set))
    if args.keep_samples:
        store.save_samples(args.profile, "front", front)
        store.save_samples(args.profile, "back", back)

    print(f"Profile '{args.profile}' calibrated: "
          f"{len(template_set.front_descriptors)} front / {len(template_set.back_descriptors)} back samples")
    print(f"  min_gap={calibration.min_gap:.3f} min_score={calibration.min_score:.3f} "
          f"max_match_distance={calibration.max_match_distance:.3f}")
    return 0


def cmd_recalibrate(args, config: Config) -> int:
    """Rebuild a profile's templates from the samples stored with it."""
    store = ProfileStore(config.profiles_dir)
    samples = store.load_samples(args.profile)
    if not samples["front"] or not samples["back"]:
        print(f"Profile '{args.profile}' has no stored samples; calibrate with --keep-samples first",
              file=sys.stderr)
        return 2

    template_set, calibration = CoinRecognizer(config).templates.calibrate(samples["front"], samples["back"])
    store.save(args.profile, serialize_template_set(template_set))
    print(f"Profile '{args.profile}' recalibrated from {len(samples['front'])} front / "
          f"{len(samples['back'])} back samples (feature prints: {template_set.feature_print_backend or 'none'})")
    print(f"  min_gap={calibration.min_gap:.3f} min_score={calibration.min_score:.3f}")
    return 0


def _load_profile(store: ProfileStore, profile_id: str):
    return deserialize_template_set(store.load_reference_template_set(profile_id))


def cmd_read(args, config: Config) -> int:
    image = read_image(args.image)
    if image is None:
        print(f"Could not read image: {args.image}", file=sys.stderr)
        return 2

    template_set = _load_profile(ProfileStore(config.profiles_dir), args.profile)
    recognizer = CoinRecognizer(config)
    results = recognizer.recognize(
        image, template_set,
        strategy=args.strategy,
        view_size=args.view_size,
        invert_sides=True if args.invert else None,
    )
    print_results(results, args.json)
    return 0


def cmd_replay(args, config: Config) -> int:
    import cv2

    template_set = _load_profile(ProfileStore(config.profiles_dir), args.profile)
    capture = cv2.VideoCapture(args.video)
    if not capture.isOpened():
        print(f"Could not open video: {args.video}", file=sys.stderr)
        return 2

    fps = capture.get(cv2.CAP_PROP_FPS) or 30.0
    video_time = [0.0]
    session = LiveSession(config, clock=lambda: video_time[0])
    try:
        session.update_profile(template_set)
        if args.invert:
            session.set_invert_sides(True)

        frame_count = 0
        while True:
            ok, frame = capture.read()
            if not ok or frame is None:
                break
            frame_count += 1
            video_time[0] = frame_count / fps
            if session.handle_frame(frame):
                session.wait_until_idle()
            if session.final_reading is not None:
                break

        logger.info(f"Replayed {frame_count} frames, last status: {session.status_text}")
        if session.final_reading is None:
            print(f"No reliable reading ({session.status_text})")
            return 1
        print_results(session.final_reading, args.json)
        return 0
    finally:
        capture.release()
        session.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="coin-reader", description="Six-coin recognition engine")
    parser.add_argument("--config", default="config.json", help="Path to the JSON configuration file")
    parser.add_argument("--env-file", default=None, help="Optional .env file with COINREADER_* overrides")
    parser.add_argument("--log-level", default=None, help="Override the configured log level")
    parser.add_argument("--json", action="store_true", help="Print results as JSON")
    sub = parser.add_subparsers(dest="command", required=True)

    calibrate = sub.add_parser("calibrate", help="Build reference templates from sample photos")
    calibrate.add_argument("--profile", required=True)
    calibrate.add_argument("--front", nargs="+", required=True, help="Photos of the front face")
    calibrate.add_argument("--back", nargs="+", required=True, help="Photos of the back face")
    calibrate.add_argument("--keep-samples", action="store_true", help="Store the photos with the profile")
    calibrate.set_defaults(func=cmd_calibrate)

    recalibrate = sub.add_parser("recalibrate", help="Rebuild a profile from its stored sample photos")
    recalibrate.add_argument("--profile", required=True)
    recalibrate.set_defaults(func=cmd_recalibrate)

    read = sub.add_parser("read", help="Read six coins from a photo")
    read.add_argument("image")
    read.add_argument("--profile", required=True)
    read.add_argument("--strategy", choices=("contour", "slots"), default="contour")
    read.add_argument("--view-size", type=parse_view_size, default=None,
                      help="Preview size the slot guides were drawn in, e.g. 390x844")
    read.add_argument("--invert", action="store_true", help="Swap front and back")
    read.set_defaults(func=cmd_read)

    replay = sub.add_parser("replay", help="Feed a video through the live session")
    replay.add_argument("video")
    replay.add_argument("--profile", required=True)
    replay.add_argument("--invert", action="store_true", help="Swap front and back")
    replay.set_defaults(func=cmd_replay)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = load_config(args.config, env_file=args.env_file)
    configure_logging(
        log_level=args.log_level or ("DEBUG" if config.debug else config.log_level),
        log_dir=config.log_dir,
        enable_file_logging=config.enable_file_logging,
        structured_logging=config.structured_logging,
    )

    try:
        return args.func(args, config)
    except ApplicationError as e:
        logger.error(f"{type(e).__name__}: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())

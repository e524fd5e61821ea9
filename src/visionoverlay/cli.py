from __future__ import annotations

import argparse
import logging
from pathlib import Path

from visionoverlay.config import DEFAULT_CONFIG_PATH


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Live camera detection overlay")
    parser.add_argument("--log-level", default="INFO", help="Logging level (DEBUG, INFO, WARNING, ...)")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Open the camera with detection overlays")
    _add_common(run)
    run.add_argument("--camera-id", type=int, default=None, help="Webcam device id")
    run.add_argument(
        "--camera-name",
        default=None,
        help='Preferred webcam name (e.g., "FaceTime HD Camera"). Resolves to camera index when possible.',
    )
    run.add_argument("--display-width", type=int, default=None, help="Scale the preview to this width")
    run.add_argument("--display-height", type=int, default=None, help="Scale the preview to this height")
    run.add_argument("--no-autostart", action="store_true", help="Wait for space before starting the camera")

    annotate = sub.add_parser("annotate-video", help="Draw detection overlays onto a recorded video")
    _add_common(annotate)
    annotate.add_argument("--input-video", required=True, help="Path to recorded video file")
    annotate.add_argument("--output-dir", default="outputs/annotated", help="Where to write the annotated video")

    sub.add_parser("list-cameras", help="List available webcam devices")

    return parser.parse_args(argv)


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", default=str(DEFAULT_CONFIG_PATH), help="Overlay config YAML")
    parser.add_argument(
        "--enable",
        action="append",
        default=None,
        metavar="CAPABILITY",
        help="Capability to enable (repeatable). Overrides capabilities.enabled in the config.",
    )


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _load(args: argparse.Namespace):
    from visionoverlay.config import enabled_capabilities, load_config, parse_capability, request_overrides
    from visionoverlay.request_table import build_requests

    config = load_config(Path(args.config))
    requests = build_requests(request_overrides(config))
    if args.enable:
        enabled = frozenset(parse_capability(name) for name in args.enable)
    else:
        enabled = enabled_capabilities(config)
    return config, requests, enabled


def run_live(args: argparse.Namespace) -> int:
    from visionoverlay.app import OverlayApp
    from visionoverlay.backends.factory import build_backend
    from visionoverlay.camera import OpenCVCameraSource, resolve_camera_id
    from visionoverlay.config import camera_settings
    from visionoverlay.errors import DeviceUnavailable
    from visionoverlay.overlay import OverlayRenderer
    from visionoverlay.session import SessionController, SessionState
    from visionoverlay.ui import UiDispatcher

    config, requests, enabled = _load(args)
    cam = camera_settings(config)
    camera_id = args.camera_id if args.camera_id is not None else cam["camera_id"]
    try:
        camera_id = resolve_camera_id(camera_id, args.camera_name or cam["camera_name"])
    except DeviceUnavailable as e:
        logging.getLogger(__name__).warning("%s Falling back to camera_id=%s", e, camera_id)
    print(f"Using camera_id={camera_id}")

    backend, report = build_backend(requests)
    state = SessionState(enabled=enabled, status=report.status())
    controller = SessionController(
        state=state,
        backend=backend,
        requests=requests,
        renderer=OverlayRenderer(),
        ui=UiDispatcher(),
        source_factory=lambda: OpenCVCameraSource(camera_id),
    )

    display_size = None
    if args.display_width and args.display_height:
        display_size = (args.display_width, args.display_height)
    OverlayApp(controller, display_size=display_size).run(autostart=not args.no_autostart)
    print(f"Session ended after {state.frame_counter} frames")
    return 0


def annotate_video_cmd(args: argparse.Namespace) -> int:
    from visionoverlay.backends.factory import build_backend
    from visionoverlay.video_annotation import annotate_video

    _, requests, enabled = _load(args)
    # Only load the models this run will use.
    backend, report = build_backend(requests, capabilities=enabled)
    print(report.status())
    artifacts = annotate_video(
        backend=backend,
        requests=requests,
        enabled=enabled,
        input_video=Path(args.input_video),
        output_dir=Path(args.output_dir),
    )
    print(f"Annotated video: {artifacts.video_path}")
    print(f"Summary: {artifacts.summary_path}")
    print(f"  processed frames: {artifacts.summary['processed_frames']}")
    print(f"  failed frames: {artifacts.summary['failed_frames']}")
    for capability, count in sorted(artifacts.summary["result_counts"].items()):
        print(f"  {capability}: {count} results")
    return 0


def list_cameras() -> int:
    from visionoverlay.camera import list_cameras_avfoundation

    cameras = list_cameras_avfoundation()
    if not cameras:
        print("No cameras found via ffmpeg AVFoundation listing.")
        return 1

    print("Available cameras:")
    for cam in cameras:
        print(f"  [{cam.idx}] {cam.name}")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level)
    if args.command == "run":
        return run_live(args)
    if args.command == "annotate-video":
        return annotate_video_cmd(args)
    if args.command == "list-cameras":
        return list_cameras()
    raise ValueError(f"Unknown command: {args.command}")


if __name__ == "__main__":
    raise SystemExit(main())

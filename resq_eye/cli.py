from __future__ import annotations

import argparse

from resq_eye.config import AppConfig
from resq_eye.pipeline.types import Facing


def parse_args(argv: list | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="ResQ-Eye live hazard sensing with voice assistance",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  resq-eye
  resq-eye --facing rear --port 8080
  resq-eye --simulate --mute
""",
    )

    parser.add_argument("--camera", type=int, default=None)
    parser.add_argument(
        "--facing",
        type=str,
        choices=[facing.value for facing in Facing],
        default=None,
        help="Preferred camera facing",
    )
    parser.add_argument(
        "--simulate",
        action="store_true",
        help="Start on the synthetic feed without touching the camera",
    )
    parser.add_argument("--mute", action="store_true", help="Disable spoken alerts")
    parser.add_argument("--host", type=str, default=None)
    parser.add_argument("--port", type=int, default=None)
    parser.add_argument("--model", type=str, default=None)
    parser.add_argument("--live-model", type=str, default=None)
    parser.add_argument(
        "--min-delay",
        type=float,
        default=None,
        help="Minimum delay between snapshot requests in milliseconds",
    )
    parser.add_argument(
        "--max-delay",
        type=float,
        default=None,
        help="Maximum delay between snapshot requests in milliseconds",
    )
    parser.add_argument("--log-file", type=str, default=None)

    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> AppConfig:
    """Apply command line overrides on top of the environment configuration."""
    config = AppConfig.from_env()
    if args.camera is not None:
        config.camera.device_index = args.camera
    if args.facing is not None:
        config.camera.preferred_facing = Facing(args.facing)
    if args.simulate:
        config.camera.force_simulation = True
    if args.mute:
        config.audio_alerts = False
    if args.host is not None:
        config.server.host = args.host
    if args.port is not None:
        config.server.port = args.port
    if args.model is not None:
        config.inference.model = args.model
    if args.live_model is not None:
        config.inference.live_model = args.live_model
    if args.min_delay is not None:
        config.poll.min_delay_ms = args.min_delay
    if args.max_delay is not None:
        config.poll.max_delay_ms = args.max_delay
    if args.log_file is not None:
        config.log_file = args.log_file
    return config


def main(argv: list | None = None) -> None:
    """Entry point for the ``resq-eye`` command."""
    from resq_eye.server.app import run

    run(build_config(parse_args(argv)))


if __name__ == "__main__":
    main()

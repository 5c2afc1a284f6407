#!/usr/bin/env python3
"""
Route Animator CLI Tool.

Command-line interface for off-line tasks:
- Rendering a saved route document to video
- Printing a flight arc between two points
- Running the API server

Usage:
    python -m api.cli render trip.json --output trip.webm
    python -m api.cli arc --from -3.70,40.42 --to 2.35,48.86
    python -m api.cli serve --port 8000
"""
import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Tuple

from routeanim.capture import (
    CaptureConfig,
    CaptureError,
    CaptureOrchestrator,
    CaptureStatus,
    FFmpegEncoder,
    RouteSurface,
)
from routeanim.config import settings as core_settings
from routeanim.geometry import arc_path
from routeanim.playback.ticker import ManualClock, SystemClock
from routeanim.route.document import DocumentError, load_route
from routeanim.route.routing import RoutingClient, refresh_segments
from routeanim.session import Session

logger = logging.getLogger(__name__)


def parse_point(value: str) -> Tuple[float, float]:
    """Parse ``lon,lat`` into a coordinate pair."""
    try:
        lon, lat = (float(part) for part in value.split(","))
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected 'lon,lat', got '{value}'") from None
    return lon, lat


def render(
    document_path: str,
    output: str = None,
    fps: int = None,
    quality: str = None,
    duration: float = None,
    realtime: bool = False,
    reroute: bool = False,
) -> None:
    """Render a route document to a WebM file."""
    try:
        route = load_route(document_path)
    except (FileNotFoundError, DocumentError) as e:
        print(f"\nError: {e}")
        sys.exit(1)

    session = Session(route=route, duration=duration)
    if reroute:
        results = refresh_segments(session.model, RoutingClient())
        print(f"Re-routed {sum(r.applied for r in results)}/{len(results)} segment(s)")

    config = CaptureConfig.from_settings(fps=fps, quality=quality)
    if output is None:
        output = str(Path(core_settings.output_dir) / f"{Path(document_path).stem}.{config.format}")

    def show_progress(status: CaptureStatus) -> None:
        if status.frames % config.fps == 0:
            print(f"\r  {status.progress * 100:5.1f}%  {status.frames} frames", end="", flush=True)

    orchestrator = CaptureOrchestrator(
        session.model,
        session.engine,
        RouteSurface(*config.preset.size),
        FFmpegEncoder.from_preset(output, config.preset, config.fps),
        config=config,
        # Off-line capture runs as fast as the machine allows
        clock=SystemClock() if realtime else ManualClock(),
        on_progress=show_progress,
    )

    print(f"\nRendering '{route.name}' ({route.segment_count} segment(s), "
          f"{session.engine.state.duration:.0f}s at {config.fps} fps, {config.quality})")
    try:
        result = orchestrator.run()
    except CaptureError as e:
        print(f"\nError: {e}")
        sys.exit(1)
    print()

    print("=" * 60)
    print(f"Stopped: {result.reason.value}")
    print(f"Frames: {result.frames}")
    print(f"Elapsed: {result.elapsed_s:.1f}s")
    if result.truncated:
        print("WARNING: the animation did not reach its end")
    if result.artifact is not None:
        print(f"Output: {result.artifact}")
    print("=" * 60 + "\n")


def print_arc(start: Tuple[float, float], end: Tuple[float, float], points: int) -> None:
    """Print a flight arc as a GeoJSON LineString."""
    path = arc_path(start, end, points)
    print(json.dumps({"type": "LineString", "coordinates": [list(p) for p in path]}, indent=2))


def serve(host: str, port: int, reload: bool = False) -> None:
    """Run the API with uvicorn."""
    import uvicorn

    uvicorn.run("api.main:app", host=host, port=port, reload=reload)


def main():
    from api.config import settings

    parser = argparse.ArgumentParser(
        description="Route Animator CLI Tool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  Render a saved route at 30 fps in 1080p:
    python -m api.cli render trip.json --output trip.webm

  Render in 480p, re-routing road segments through OSRM first:
    python -m api.cli render trip.json --quality low --reroute

  Print the flight arc from Madrid to Paris:
    python -m api.cli arc --from -3.70,40.42 --to 2.35,48.86

  Run the API server:
    python -m api.cli serve --port 8000
        """
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # render
    render_parser = subparsers.add_parser("render", help="Render a route document to video")
    render_parser.add_argument("document", help="Route document (JSON)")
    render_parser.add_argument("--output", "-o", help="Output file (default: <output dir>/<document>.webm)")
    render_parser.add_argument("--fps", type=int, help=f"Frames per second (default: {core_settings.export_fps})")
    render_parser.add_argument(
        "--quality",
        choices=["low", "medium", "high"],
        help=f"Resolution preset (default: {core_settings.export_quality})",
    )
    render_parser.add_argument("--duration", type=float, help="Animation length in seconds (5-30)")
    render_parser.add_argument(
        "--realtime",
        action="store_true",
        help="Capture in wall-clock time instead of as fast as possible",
    )
    render_parser.add_argument(
        "--reroute",
        action="store_true",
        help="Refresh segment geometry through the routing service first",
    )

    # arc
    arc_parser = subparsers.add_parser("arc", help="Print a flight arc between two points")
    arc_parser.add_argument("--from", dest="start", type=parse_point, required=True, help="lon,lat")
    arc_parser.add_argument("--to", dest="end", type=parse_point, required=True, help="lon,lat")
    arc_parser.add_argument("--points", type=int, default=50, help="Number of points (default: 50)")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Run the API server")
    serve_parser.add_argument("--host", default=settings.api_host)
    serve_parser.add_argument("--port", type=int, default=settings.api_port)
    serve_parser.add_argument("--reload", action="store_true", help="Reload on code changes")

    args = parser.parse_args()
    core_settings.configure_logging()

    if args.command == "render":
        render(
            args.document,
            output=args.output,
            fps=args.fps,
            quality=args.quality,
            duration=args.duration,
            realtime=args.realtime,
            reroute=args.reroute,
        )
    elif args.command == "arc":
        print_arc(args.start, args.end, args.points)
    elif args.command == "serve":
        serve(args.host, args.port, args.reload)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()

"""CLI entry point for connector elevation enforcement."""

from __future__ import annotations

import argparse
from datetime import datetime, timezone
from pathlib import Path
import platform

import numpy as np
import scipy

from elevation.config import STRATEGIES, DiffusionConfig, EnforcerConfig, SpatialIndexConfig
from elevation.derive import elevation_preview_u8
from elevation.enforcer import create_enforcer
from elevation.errors import SceneFormatError
from elevation.io import (
    declare_constraints,
    elevations_payload,
    load_scene,
    resolve_output_dir,
    write_json,
    write_png_u8,
)


def build_parser() -> argparse.ArgumentParser:
    defaults = DiffusionConfig()
    parser = argparse.ArgumentParser(description="Assign elevations to road and bridge connectors")
    parser.add_argument("--scene", required=True, type=Path, help="Scene JSON with nodes, roads and constraints")
    parser.add_argument("--out", default="out", help="Output root directory")
    parser.add_argument("--strategy", choices=STRATEGIES, default="diffusion", help="Enforcement strategy")
    parser.add_argument("--dt", type=float, default=defaults.dt, help="Diffusion time step")
    parser.add_argument("--total-time", type=float, default=defaults.total_time, help="Simulated diffusion time")
    parser.add_argument("--max-steps", type=int, default=None, help="Hard cap on diffusion steps")
    parser.add_argument(
        "--tolerance",
        type=float,
        default=defaults.tolerance,
        help="Stop once the largest per-step change falls below this value (0 disables)",
    )
    parser.add_argument("--cell-size", type=float, default=SpatialIndexConfig().cell_size, help="Spatial index cell size")
    parser.add_argument("--preview-size", type=int, default=256, help="Preview image edge length in pixels")
    parser.add_argument("--overwrite", action="store_true", help="Overwrite files in existing output directory")
    parser.add_argument(
        "--preview",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Write a grayscale elevation preview PNG",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.dt <= 0:
        parser.error("--dt must be positive")
    if args.total_time < 0:
        parser.error("--total-time must be non-negative")

    try:
        scene = load_scene(args.scene)
    except (OSError, SceneFormatError) as exc:
        parser.error(str(exc))

    config = EnforcerConfig(
        strategy=args.strategy,
        spatial=SpatialIndexConfig(cell_size=args.cell_size),
        diffusion=DiffusionConfig(
            dt=args.dt,
            total_time=args.total_time,
            max_steps=args.max_steps,
            tolerance=args.tolerance if args.tolerance and args.tolerance > 0 else None,
        ),
    )
    try:
        enforcer = create_enforcer(config, scene.network)
        declare_constraints(enforcer, scene)
    except ValueError as exc:
        parser.error(str(exc))
    enforcer.enforce_constraints()
    metrics = enforcer.metrics

    out_dir = resolve_output_dir(args.out, args.scene.stem, args.strategy, overwrite=args.overwrite)
    preview_path = out_dir / "elevation_preview.png"
    if preview_path.exists():
        preview_path.unlink()

    write_json(out_dir / "elevations.json", elevations_payload(scene))
    write_json(
        out_dir / "meta.json",
        {
            "scene": str(args.scene),
            "config": config.to_dict(),
            "metrics": {
                "connector_count": metrics.connector_count,
                "stiff_group_count": metrics.stiff_group_count,
                "constraint_count": metrics.constraint_count,
                "graph_node_count": metrics.graph_node_count,
                "graph_edge_count": metrics.graph_edge_count,
                "roads_skipped": metrics.roads_skipped,
                "diffusion_steps": metrics.diffusion_steps,
                "simulated_time": metrics.simulated_time,
                "max_delta": metrics.max_delta,
                "converged": metrics.converged,
                "lane_connectors_written": metrics.lane_connectors_written,
                "centerline_connectors_interpolated": metrics.centerline_connectors_interpolated,
            },
            "enforce_seconds": metrics.enforce_seconds,
            "generated_at_utc": datetime.now(timezone.utc).isoformat(),
            "python_version": platform.python_version(),
            "numpy_version": np.__version__,
            "scipy_version": scipy.__version__,
        },
    )
    if args.preview and len(scene.connectors) > 0:
        connectors = list(scene.connectors.values())
        xz = np.asarray([c.pos_xz for c in connectors], dtype=np.float64)
        heights = np.asarray([c.y for c in connectors], dtype=np.float64)
        write_png_u8(preview_path, elevation_preview_u8(xz, heights, size_px=args.preview_size))

    print(f"Enforced elevations: {out_dir}")
    print(
        f"Connectors {metrics.connector_count}; "
        f"stiff groups {metrics.stiff_group_count}; "
        f"constraints {metrics.constraint_count}"
    )
    if metrics.strategy == "diffusion":
        print(
            "Graph: "
            f"nodes={metrics.graph_node_count}, "
            f"edges={metrics.graph_edge_count}, "
            f"roads skipped={metrics.roads_skipped}"
        )
        print(
            "Diffusion: "
            f"steps={metrics.diffusion_steps}, "
            f"t={metrics.simulated_time:.2f}, "
            f"max_delta={metrics.max_delta:.3e}, "
            f"converged={metrics.converged}"
        )
    print(
        "Lanes: "
        f"written={metrics.lane_connectors_written}, "
        f"centerline interpolated={metrics.centerline_connectors_interpolated}"
    )
    print(f"Enforcement time: {metrics.enforce_seconds:.3f} s")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

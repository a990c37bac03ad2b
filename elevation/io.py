"""Scene loading and result serialization for the command line tool."""

from __future__ import annotations

from dataclasses import dataclass, field
import json
from pathlib import Path
from typing import Any

import numpy as np
from PIL import Image

from elevation.connector import Connector, GroundState
from elevation.enforcer import ConstraintType, EleConstraintEnforcer
from elevation.errors import SceneFormatError
from elevation.network import MapNode, Road, RoadNetwork


@dataclass
class Scene:
    """Connectors keyed by stable names, their road topology and declarations."""

    connectors: dict[str, Connector] = field(default_factory=dict)
    network: RoadNetwork = field(default_factory=RoadNetwork)
    declarations: list[dict[str, Any]] = field(default_factory=list)


def node_key(node_id: int) -> str:
    return f"n{node_id}"


def _ground_state(value: Any, where: str) -> GroundState:
    if value is None:
        return GroundState.ON
    try:
        return GroundState(str(value).lower())
    except ValueError:
        raise SceneFormatError(f"{where}: unknown ground state {value!r}; expected on, above or below") from None


def _point(raw: Any, where: str) -> Connector:
    if not isinstance(raw, dict):
        raise SceneFormatError(f"{where}: expected an object with x and z")
    try:
        x = float(raw["x"])
        z = float(raw["z"])
        y = float(raw.get("elevation", 0.0))
    except (KeyError, TypeError, ValueError) as exc:
        raise SceneFormatError(f"{where}: invalid coordinates ({exc})") from None
    return Connector(x, z, y=y, ground_state=_ground_state(raw.get("ground"), where))


def parse_scene(payload: dict[str, Any]) -> Scene:
    """Build a scene from the decoded JSON document."""

    if not isinstance(payload, dict):
        raise SceneFormatError("scene must be a JSON object")
    scene = Scene()
    nodes: dict[int, MapNode] = {}

    for i, raw in enumerate(payload.get("nodes", [])):
        where = f"nodes[{i}]"
        if not isinstance(raw, dict) or "id" not in raw:
            raise SceneFormatError(f"{where}: node requires an id")
        try:
            node_id = int(raw["id"])
        except (TypeError, ValueError):
            raise SceneFormatError(f"{where}: node id must be an integer, got {raw['id']!r}") from None
        if node_id in nodes:
            raise SceneFormatError(f"{where}: duplicate node id {node_id}")
        connector = _point(raw, where)
        node = MapNode(node_id, connector.x, connector.z)
        connector.reference = node
        nodes[node_id] = node
        scene.connectors[node_key(node_id)] = connector

    for i, raw in enumerate(payload.get("roads", [])):
        where = f"roads[{i}]"
        try:
            start = nodes[int(raw["start"])]
            end = nodes[int(raw["end"])]
        except (KeyError, TypeError, ValueError):
            raise SceneFormatError(f"{where}: start and end must name declared nodes") from None
        road = Road(start, end)
        for part, target in (("centerline", road.centerline), ("left", road.left), ("right", road.right)):
            for j, point in enumerate(raw.get(part, [])):
                connector = _point(point, f"{where}.{part}[{j}]")
                scene.connectors[f"r{i}.{part}{j}"] = connector
                target.append(connector)
        scene.network.add_road(road)

    declarations = payload.get("constraints", [])
    if not isinstance(declarations, list):
        raise SceneFormatError("constraints must be a list")
    scene.declarations = declarations
    return scene


def load_scene(path: str | Path) -> Scene:
    try:
        payload = json.loads(Path(path).read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise SceneFormatError(f"{path}: invalid JSON ({exc})") from None
    return parse_scene(payload)


def declare_constraints(enforcer: EleConstraintEnforcer, scene: Scene) -> int:
    """Register the scene with an enforcer and replay its declarations."""

    enforcer.add_connectors(scene.connectors.values())

    def lookup(key: Any, where: str) -> Connector:
        connector = scene.connectors.get(str(key))
        if connector is None:
            raise SceneFormatError(f"{where}: unknown connector {key!r}")
        return connector

    for i, raw in enumerate(scene.declarations):
        where = f"constraints[{i}]"
        if not isinstance(raw, dict):
            raise SceneFormatError(f"{where}: constraint must be an object")
        kind = raw.get("kind")
        keys = raw.get("connectors", [])
        if not isinstance(keys, list):
            raise SceneFormatError(f"{where}: connectors must be a list")
        cs = [lookup(k, where) for k in keys]
        try:
            ctype = ConstraintType(raw.get("type", "exact"))
        except ValueError:
            raise SceneFormatError(f"{where}: unknown constraint type {raw.get('type')!r}") from None
        if kind == "same_elevation":
            enforcer.require_same_elevation(cs)
        elif kind == "vertical_distance" and len(cs) in (2, 3):
            enforcer.require_vertical_distance(ctype, float(raw.get("distance", 0.0)), *cs)
        elif kind == "incline":
            enforcer.require_incline(ctype, float(raw.get("incline", 0.0)), cs)
        elif kind == "smoothness" and len(cs) == 3:
            enforcer.require_smoothness(*cs)
        else:
            raise SceneFormatError(f"{where}: unsupported declaration {kind!r} with {len(cs)} connectors")
    return len(scene.declarations)


def resolve_output_dir(out_root: str | Path, scene_name: str, strategy: str, *, overwrite: bool) -> Path:
    """Create and return the output directory for one enforcement run."""

    target = Path(out_root) / scene_name / strategy
    if target.exists() and any(target.iterdir()) and not overwrite:
        raise FileExistsError(
            f"Output directory already exists and is not empty: {target}. Use --overwrite to replace files."
        )
    target.mkdir(parents=True, exist_ok=True)
    return target


def elevations_payload(scene: Scene) -> dict[str, Any]:
    return {
        key: {
            "x": c.x,
            "y": c.y,
            "z": c.z,
            "ground": c.ground_state.value,
        }
        for key, c in scene.connectors.items()
    }


def write_png_u8(path: str | Path, raster_u8: np.ndarray) -> None:
    image = Image.fromarray(raster_u8.astype(np.uint8))
    image.save(Path(path))


def write_json(path: str | Path, payload: dict[str, Any]) -> None:
    text = json.dumps(payload, indent=2, sort_keys=True)
    Path(path).write_text(text + "\n", encoding="utf-8")

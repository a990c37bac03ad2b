from __future__ import annotations

import json

import pytest

from cli.main import main


SCENE = {
    "nodes": [
        {"id": 1, "x": 0.0, "z": 0.0, "elevation": 0.0, "ground": "above"},
        {"id": 2, "x": 2.0, "z": 0.0, "elevation": 0.0},
        {"id": 3, "x": 40.0, "z": 30.0, "elevation": 1.0, "ground": "below"},
    ],
    "roads": [
        {
            "start": 1,
            "end": 2,
            "left": [{"x": 0.0, "z": 1.0}, {"x": 2.0, "z": 1.0}],
            "right": [{"x": 0.0, "z": -1.0}, {"x": 2.0, "z": -1.0}],
        },
        {
            "start": 2,
            "end": 3,
            "centerline": [{"x": 20.0, "z": 15.0}],
        },
    ],
    "constraints": [
        {"kind": "smoothness", "connectors": ["n1", "n2", "r1.centerline0"]},
    ],
}


def _write_scene(tmp_path, payload=SCENE):
    path = tmp_path / "junction.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def test_cli_writes_elevations_and_meta(tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    scene_path = _write_scene(tmp_path)
    out_dir = tmp_path / "out"

    code = main(["--scene", str(scene_path), "--out", str(out_dir), "--max-steps", "500"])
    assert code == 0

    base = out_dir / "junction" / "diffusion"
    elevations = json.loads((base / "elevations.json").read_text(encoding="utf-8"))
    meta = json.loads((base / "meta.json").read_text(encoding="utf-8"))

    assert set(elevations) == {
        "n1",
        "n2",
        "n3",
        "r0.left0",
        "r0.left1",
        "r0.right0",
        "r0.right1",
        "r1.centerline0",
    }
    assert elevations["n1"]["y"] == 5.0
    assert elevations["n3"]["y"] == -4.0
    assert elevations["r0.left0"]["y"] == elevations["n1"]["y"]
    assert elevations["r0.right1"]["y"] == elevations["n2"]["y"]

    assert meta["config"]["strategy"] == "diffusion"
    assert meta["config"]["diffusion"]["max_steps"] == 500
    assert meta["metrics"]["connector_count"] == 8
    assert meta["metrics"]["constraint_count"] == 1
    assert meta["metrics"]["diffusion_steps"] <= 500
    assert meta["enforce_seconds"] >= 0.0
    assert "generated_at_utc" in meta
    assert (base / "elevation_preview.png").exists()


def test_cli_refuses_to_overwrite_without_flag(tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    scene_path = _write_scene(tmp_path)
    args = ["--scene", str(scene_path), "--out", str(tmp_path / "out"), "--strategy", "interpolated"]

    assert main(args) == 0
    with pytest.raises(FileExistsError):
        main(args)
    assert main(args + ["--overwrite", "--no-preview"]) == 0
    assert not (tmp_path / "out" / "junction" / "interpolated" / "elevation_preview.png").exists()


def test_cli_reports_malformed_scene(tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    bad = {"nodes": [{"id": 1, "x": 0.0, "z": 0.0, "ground": "floating"}]}
    scene_path = _write_scene(tmp_path, bad)

    with pytest.raises(SystemExit) as exc:
        main(["--scene", str(scene_path), "--out", str(tmp_path / "out")])
    assert exc.value.code == 2


def test_cli_reports_bad_node_id_and_constraint_entry(tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    scenes = [
        {"nodes": [{"id": "north", "x": 0.0, "z": 0.0}]},
        {"nodes": [{"id": 1, "x": 0.0, "z": 0.0}], "constraints": ["n1"]},
        {"nodes": [{"id": 1, "x": 0.0, "z": 0.0}], "constraints": [{"kind": "incline", "connectors": "n1"}]},
    ]
    for scene in scenes:
        scene_path = _write_scene(tmp_path, scene)
        with pytest.raises(SystemExit) as exc:
            main(["--scene", str(scene_path), "--out", str(tmp_path / "out")])
        assert exc.value.code == 2

# app.py
from __future__ import annotations
import os
import threading
from typing import Any, Dict, List, Optional

from flask import Flask, request, jsonify

from config import CFG
from demand_parser import parse_inventory
from io_files import SaveDataError, decode_tilemap, encode_tilemap, write_preview_html, write_save
from models import Cell, GridConstraints
from render import render_ascii, render_svg
from solver.driven import DrivenResult, add_tile_by_id, finish, on_remove_tile, restart_wfc, road_tile_for
from solver.seed import SeedState
from solver.wfc import Phase, StopCondition, run_steps, solve as solve_model
from tilemap import Tilemap
from tiles import CATALOG, default_inventory

from progress import (
    reset as progress_reset,
    snapshot as progress_json,
    start_run, record_model, set_done,
)

BASE_DIR = os.path.dirname(os.path.abspath(__file__))

WORLD_LOCK = threading.Lock()


def _new_world() -> Dict[str, Any]:
    constraints = GridConstraints(int(CFG.GRID_WIDTH), int(CFG.GRID_HEIGHT))
    return {
        "tilemap": Tilemap.empty(constraints),
        "seed": SeedState.from_seed(int(CFG.SEED)),
        "inventory": default_inventory(CATALOG),
        "history": (),
        "pending": None,       # DrivenResult prepared for stepping
        "pending_from": None,  # tilemap the pending edit started from
    }


WORLD: Dict[str, Any] = _new_world()

app = Flask(__name__)


@app.after_request
def _no_cache_progress(resp):
    try:
        if request.path == "/progress":
            resp.headers["Cache-Control"] = "no-store, max-age=0"
            resp.headers["Pragma"] = "no-cache"
            resp.headers["Expires"] = "0"
    except Exception:
        pass
    return resp


def _merge_like_mapping() -> Dict[str, Any]:
    merged: Dict[str, Any] = {}
    payload = request.get_json(silent=True)
    if isinstance(payload, dict):
        merged.update(payload)

    try:
        form_dict = request.form.to_dict(flat=False)
    except Exception:
        form_dict = dict(request.form or {})
    for k, v in form_dict.items():
        merged.setdefault(k, v if isinstance(v, list) else [v])

    try:
        args_dict = request.args.to_dict(flat=False)
    except Exception:
        args_dict = dict(request.args or {})
    for k, v in args_dict.items():
        merged.setdefault(k, v if isinstance(v, list) else [v])

    return merged


def _first(like: Dict[str, Any], key: str) -> Any:
    value = like.get(key)
    if isinstance(value, list):
        return value[0] if value else None
    return value


def _int_arg(like: Dict[str, Any], key: str, default: Optional[int] = None) -> int:
    raw = _first(like, key)
    if raw is None or raw == "":
        if default is None:
            raise ValueError(f"missing '{key}'")
        return default
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ValueError(f"'{key}' must be an integer") from None


def _cell_arg(like: Dict[str, Any], tilemap: Tilemap) -> Cell:
    x = _int_arg(like, "x")
    y = _int_arg(like, "y")
    cell = Cell.from_coordinates(tilemap.constraints, x, y)
    if cell is None:
        raise ValueError(f"({x}, {y}) is outside the grid")
    return cell


def _error(message: str, status: int = 400):
    return jsonify({"ok": False, "error": message}), status


def _cells_json(cells) -> List[List[int]]:
    return [[c.x, c.y] for c in sorted(cells)]


def _state_json() -> Dict[str, Any]:
    tilemap: Tilemap = WORLD["tilemap"]
    seed: SeedState = WORLD["seed"]
    pending: Optional[DrivenResult] = WORLD["pending"]
    return {
        "ok": True,
        "width": tilemap.constraints.width,
        "height": tilemap.constraints.height,
        "tiles": tilemap.tile_ids(),
        "lots": [{"id": i, "x": c.x, "y": c.y} for i, c in tilemap.lots(CATALOG)],
        "ascii": render_ascii(tilemap),
        "inventory": {str(k): v for k, v in sorted(WORLD["inventory"].items())},
        "seed": {"initial": seed.initial, "steps": seed.steps},
        "history": _cells_json(WORLD["history"]),
        "pending": pending is not None,
        "phase": pending.model.phase.value if pending is not None else "",
    }


def _result_json(result: DrivenResult) -> Dict[str, Any]:
    model = result.model
    return {
        "ok": model.phase is not Phase.FAILED,
        "phase": model.phase.value,
        "reason": model.reason,
        "changed": _cells_json(result.changed),
        "actions": [cue.value for cue in result.actions],
        "steps": model.steps,
        "backtracks": model.backtracks,
        "ascii": render_ascii(result.tilemap),
    }


def _settle_pending_locked() -> None:
    """Run a half-revealed edit to completion before the next one starts."""

    pending: Optional[DrivenResult] = WORLD["pending"]
    if pending is None:
        return
    model = solve_model(pending.model)
    done = finish(DrivenResult(model, model.tilemap, pending.changed, pending.actions, pending.history),
                  WORLD["pending_from"])
    WORLD["pending"] = None
    WORLD["pending_from"] = None
    _commit_locked(done)


def _commit_locked(result: DrivenResult) -> bool:
    """Adopt a finished result; failed re-solves leave the world untouched."""

    record_model(result.model, changed=len(result.changed))
    if result.model.phase is Phase.FAILED:
        set_done(False, reason=result.model.reason)
        return False
    WORLD["tilemap"] = result.tilemap
    WORLD["seed"] = result.model.seed
    WORLD["inventory"] = dict(result.model.inventory)
    WORLD["history"] = result.history
    set_done(True)
    return True


def _apply_locked(result: DrivenResult, stepped: bool, before: Tilemap):
    if stepped and result.model.phase is Phase.SOLVING:
        WORLD["pending"] = result
        WORLD["pending_from"] = before
        record_model(result.model, changed=len(result.changed))
        out = _result_json(result)
        out["pending"] = True
        return jsonify(out)
    if stepped:
        result = finish(result, before)
    _commit_locked(result)
    out = _result_json(result)
    out["pending"] = False
    return jsonify(out)


def _stepped(like: Dict[str, Any]) -> bool:
    raw = _first(like, "stepped")
    return str(raw).strip().lower() in ("1", "true", "yes", "on")


@app.route("/state")
def state():
    with WORLD_LOCK:
        return jsonify(_state_json())


@app.route("/tiles", methods=["POST"])
def add_tile():
    like = _merge_like_mapping()
    with WORLD_LOCK:
        try:
            _settle_pending_locked()
            tilemap: Tilemap = WORLD["tilemap"]
            cell = _cell_arg(like, tilemap)
            raw_id = _first(like, "tile_id")
            tile_id = road_tile_for(tilemap, cell) if raw_id in (None, "") else _int_arg(like, "tile_id")
            stepped = _stepped(like)
            start_run("add")
            result = add_tile_by_id(
                WORLD["seed"], WORLD["inventory"], cell, tile_id, tilemap, WORLD["history"],
                solve=not stepped,
            )
        except ValueError as e:
            return _error(str(e))
        return _apply_locked(result, stepped, tilemap)


@app.route("/tiles/remove", methods=["POST"])
def remove_tile():
    like = _merge_like_mapping()
    with WORLD_LOCK:
        try:
            _settle_pending_locked()
            tilemap: Tilemap = WORLD["tilemap"]
            cell = _cell_arg(like, tilemap)
            stepped = _stepped(like)
            start_run("remove")
            result = on_remove_tile(
                WORLD["seed"], WORLD["inventory"], cell, tilemap, WORLD["history"],
                solve=not stepped,
            )
        except ValueError as e:
            return _error(str(e))
        return _apply_locked(result, stepped, tilemap)


@app.route("/restart", methods=["POST"])
def restart():
    like = _merge_like_mapping()
    with WORLD_LOCK:
        _settle_pending_locked()
        tilemap: Tilemap = WORLD["tilemap"]
        ok, inventory = parse_inventory(like)
        if ok:
            WORLD["inventory"] = {**WORLD["inventory"], **inventory}
        stepped = _stepped(like)
        progress_reset()
        start_run("restart")
        result = restart_wfc(WORLD["seed"], WORLD["inventory"], tilemap, solve=not stepped)
        return _apply_locked(result, stepped, tilemap)


@app.route("/tick", methods=["POST"])
def tick():
    like = _merge_like_mapping()
    with WORLD_LOCK:
        try:
            delta = float(_first(like, "delta_ms") or 0)
        except (TypeError, ValueError):
            return _error("'delta_ms' must be a number")
        before: Tilemap = WORLD["tilemap"]
        after = before.advance(delta)
        WORLD["tilemap"] = after
        return jsonify({"ok": True, "changed": _cells_json(before.changed_cells(after))})


@app.route("/step", methods=["POST"])
def step():
    like = _merge_like_mapping()
    with WORLD_LOCK:
        pending: Optional[DrivenResult] = WORLD["pending"]
        if pending is None:
            return _error("no stepped solve in progress")
        try:
            steps = _int_arg(like, "steps", int(CFG.STEPS_PER_TICK))
        except ValueError as e:
            return _error(str(e))
        stop = StopCondition.IDLE if _first(like, "until") == "not_ready" else StopCondition.DONE
        model = run_steps(pending.model, steps, stop)
        result = DrivenResult(model, model.tilemap, pending.changed, pending.actions, pending.history)
        if model.phase is Phase.SOLVING:
            WORLD["pending"] = result
            record_model(model)
            out = _result_json(result)
            out["pending"] = True
            return jsonify(out)
        before = WORLD["pending_from"]
        WORLD["pending"] = None
        WORLD["pending_from"] = None
        result = finish(result, before)
        _commit_locked(result)
        out = _result_json(result)
        out["pending"] = False
        return jsonify(out)


@app.route("/save")
def save():
    with WORLD_LOCK:
        _settle_pending_locked()
        doc = encode_tilemap(WORLD["tilemap"], WORLD["seed"])
        try:
            path = write_save(WORLD["tilemap"], WORLD["seed"], BASE_DIR)
        except OSError as e:
            return _error(f"could not write save: {e}", 500)
        return jsonify({"ok": True, "path": os.path.basename(path), "save": doc})


@app.route("/load", methods=["POST"])
def load():
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return _error("expected a JSON save document")
    doc = payload.get("save", payload)
    try:
        tilemap, seed = decode_tilemap(doc)
    except SaveDataError as e:
        return _error(str(e))
    with WORLD_LOCK:
        WORLD["pending"] = None
        WORLD["pending_from"] = None
        WORLD["tilemap"] = tilemap
        WORLD["seed"] = seed or SeedState.from_seed(int(CFG.SEED))
        WORLD["history"] = ()
        ok, inventory = parse_inventory(payload)
        if ok:
            WORLD["inventory"] = {**default_inventory(CATALOG), **inventory}
        progress_reset()
        return jsonify(_state_json())


@app.route("/view")
def view():
    with WORLD_LOCK:
        tilemap: Tilemap = WORLD["tilemap"]
        svg, legend = render_svg(tilemap)
        ascii_map = render_ascii(tilemap)
    try:
        write_preview_html(svg, legend, ascii_map, BASE_DIR)
    except OSError:
        pass
    return f"<!doctype html><html><body>{svg}<ul>{legend}</ul><pre>{ascii_map}</pre></body></html>"


@app.route("/progress")
def progress():
    return jsonify(progress_json())


if __name__ == "__main__":
    progress_reset()
    app.run(debug=False)

from __future__ import annotations

import json
import logging
import os
import time
import threading
from pathlib import Path
from typing import Any, Dict, Optional

from config import CFG

# ------------------------------
# Shared run state (one world per process, polled by other processes)
# ------------------------------

PROGRESS_LOCK = threading.Lock()
_HERE = Path(__file__).resolve().parent


def _state_file_path() -> Path:
    configured = os.environ.get("PROGRESS_STATE_FILE")
    if configured:
        return Path(configured)
    return _HERE / "logs" / "progress_state.json"


STATE_FILE = _state_file_path()
_LAST_STATE_MTIME: float = 0.0


def _open_run_logger() -> logging.Logger:
    logger = logging.getLogger("wfc.runs")
    if logger.handlers:
        return logger

    log_path = Path(CFG.RUN_LOG)
    if not log_path.is_absolute():
        log_path = _HERE / log_path
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(log_path, encoding="utf-8")
    except OSError:
        # read-only checkout: runs are still tracked, just not written down
        return logger
    handler.setFormatter(logging.Formatter(
        "%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    logger.propagate = False
    return logger


RUN_LOGGER = _open_run_logger()


def _note(event: str, **fields: Any) -> None:
    """One ``event | key=value ...`` line in the run log."""
    if not RUN_LOGGER.handlers:
        return
    pairs = " ".join(f"{k}={v}" for k, v in fields.items() if v is not None and v != "")
    if pairs:
        RUN_LOGGER.info("%s | %s", event, pairs)
    else:
        RUN_LOGGER.info("%s", event)


# What the log needs to remember between calls; not shown to the UI.
_RUN: Dict[str, Any] = {
    "action": "",
    "started": None,
    "phase": "",
    "phase_since": None,
}

# What the UI polls
PROGRESS: Dict[str, Any] = {
    "status": "Idle",          # Idle | Solving | Solved | Error
    "phase": "",               # solving | done | failed
    "action": "",              # add | remove | restart | step | load
    "steps": 0,                # solver units performed
    "backtracks": 0,           # decision-stack pops
    "changed": 0,              # cells changed by the last edit
    "elapsed_start": None,     # t0 (float) when the run started
    "elapsed": 0.0,            # seconds snapshot
    "message": "",             # failure reason, if any
    "done": False,             # run completed
    "ok": None,                # success flag if known
    "run_id": 0,               # bumped by every reset
}


def _save_locked() -> None:
    global _LAST_STATE_MTIME
    tmp = STATE_FILE.with_name(STATE_FILE.name + ".tmp")
    try:
        STATE_FILE.parent.mkdir(parents=True, exist_ok=True)
        tmp.write_text(json.dumps(PROGRESS, separators=(",", ":")), encoding="utf-8")
        tmp.replace(STATE_FILE)
        _LAST_STATE_MTIME = STATE_FILE.stat().st_mtime
    except OSError:
        pass


def _sync_from_disk_locked(force: bool = False) -> None:
    """Pick up a state file written by another worker process."""
    global _LAST_STATE_MTIME
    try:
        mtime = STATE_FILE.stat().st_mtime
    except OSError:
        return
    if not force and mtime <= _LAST_STATE_MTIME:
        return
    try:
        data = json.loads(STATE_FILE.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return
    if isinstance(data, dict):
        PROGRESS.update({k: data[k] for k in PROGRESS if k in data})
        _LAST_STATE_MTIME = mtime


# ------------------------------
# Helpers
# ------------------------------

def _seconds(t0: Any) -> Optional[float]:
    if not isinstance(t0, (int, float)):
        return None
    return max(0.0, time.time() - float(t0))

def _fmt_elapsed(seconds: float) -> str:
    seconds = max(0.0, float(seconds))
    if seconds < 60:
        return f"{int(seconds)}s"
    m, s = divmod(int(seconds), 60)
    if m < 60:
        return f"{m}m {s}s"
    h, m = divmod(m, 60)
    return f"{h}h {m}m"

def _tick_locked() -> None:
    elapsed = _seconds(PROGRESS.get("elapsed_start"))
    if elapsed is not None:
        PROGRESS["elapsed"] = elapsed

def _as_count(n: Any) -> int:
    try:
        return max(0, int(n))
    except (TypeError, ValueError):
        return 0

def _phase_changed_locked(phase: str) -> None:
    if phase == _RUN["phase"]:
        return
    took = _seconds(_RUN["phase_since"])
    if _RUN["phase"]:
        _note("Phase left", phase=_RUN["phase"], action=_RUN["action"],
              took=None if took is None else f"{took:.2f}s")
    _RUN["phase"] = phase
    _RUN["phase_since"] = time.time()
    if phase:
        _note("Phase entered", phase=phase, action=_RUN["action"])

# ------------------------------
# Run lifecycle
# ------------------------------

def reset() -> None:
    with PROGRESS_LOCK:
        run_id = _as_count(PROGRESS.get("run_id")) + 1
        PROGRESS.update({
            "status": "Idle",
            "phase": "",
            "action": "",
            "steps": 0,
            "backtracks": 0,
            "changed": 0,
            "elapsed_start": None,
            "elapsed": 0.0,
            "message": "",
            "done": False,
            "ok": None,
            "run_id": run_id,
        })
        _RUN.update({"action": "", "started": None, "phase": "", "phase_since": None})
        _note("Progress reset", run_id=run_id)
        _save_locked()

def start_run(action: Any) -> None:
    """Begin tracking one editor action (add/remove/restart/step/load)."""
    action = "" if action is None else str(action)
    with PROGRESS_LOCK:
        now = time.time()
        PROGRESS.update({
            "status": "Solving",
            "action": action,
            "elapsed_start": now,
            "elapsed": 0.0,
            "message": "",
            "done": False,
            "ok": None,
        })
        _RUN["action"] = action
        _RUN["started"] = now
        _note("Run started", action=action, run_id=PROGRESS.get("run_id"))
        _save_locked()

def set_status(v: Any) -> None:
    with PROGRESS_LOCK:
        PROGRESS["status"] = str(v)
        _save_locked()

def set_phase(v: Any) -> None:
    with PROGRESS_LOCK:
        phase = "" if v is None else str(v)
        PROGRESS["phase"] = phase
        _phase_changed_locked(phase)
        _save_locked()

def set_counters(*, steps: Any = None, backtracks: Any = None, changed: Any = None) -> None:
    with PROGRESS_LOCK:
        for key, value in (("steps", steps), ("backtracks", backtracks), ("changed", changed)):
            if value is not None:
                PROGRESS[key] = _as_count(value)
        _tick_locked()
        _save_locked()

def record_model(model: Any, changed: Any = None) -> None:
    """Copy phase and counters off a solver model."""
    phase = getattr(getattr(model, "phase", None), "value", "")
    set_phase(phase)
    set_counters(
        steps=getattr(model, "steps", 0),
        backtracks=getattr(model, "backtracks", 0),
        changed=changed,
    )

def set_done(ok: Any = None, *, reason: Any = None) -> None:
    """Mark the run complete.

    ``ok`` decides the final status when given; otherwise a run that never
    reported anything counts as solved.  ``reason`` lands in ``message``.
    """
    with PROGRESS_LOCK:
        _tick_locked()
        if ok is not None:
            PROGRESS["ok"] = bool(ok)
            PROGRESS["status"] = "Solved" if ok else "Error"
        elif PROGRESS.get("status") in ("", "Idle", "Solving", None):
            PROGRESS["ok"] = True
            PROGRESS["status"] = "Solved"
        if reason is not None:
            PROGRESS["message"] = str(reason)
        PROGRESS["done"] = True
        took = _seconds(_RUN["started"])
        _note(
            "Run finished",
            action=PROGRESS.get("action"),
            status=PROGRESS.get("status"),
            ok=PROGRESS.get("ok"),
            took=None if took is None else f"{took:.2f}s",
            steps=PROGRESS.get("steps"),
            backtracks=PROGRESS.get("backtracks"),
            changed=PROGRESS.get("changed"),
            message=PROGRESS.get("message"),
        )
        _RUN.update({"started": None, "phase": "", "phase_since": None})
        _save_locked()

# ------------------------------
# Snapshots for the UI
# ------------------------------

def snapshot() -> Dict[str, Any]:
    with PROGRESS_LOCK:
        _sync_from_disk_locked()
        _tick_locked()
        out = {key: value for key, value in PROGRESS.items() if key != "elapsed_start"}
        out["elapsed_str"] = _fmt_elapsed(PROGRESS["elapsed"])
        return out


with PROGRESS_LOCK:
    _sync_from_disk_locked(force=True)

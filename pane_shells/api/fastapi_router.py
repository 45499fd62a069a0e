from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request
from typing import Optional

from ..record import EXCHANGE_TYPES
from ..runtime import PaneRuntime
from ..store import is_valid_date

router = APIRouter()


def get_runtime_dep(request: Request) -> PaneRuntime:
    # Hosts attach their runtime to app.state at startup.
    runtime = getattr(request.app.state, "pane_runtime", None)
    if runtime is None:
        raise HTTPException(503, "Pane runtime not initialized")
    return runtime


def _require_pane(runtime: PaneRuntime, pane_id: int) -> None:
    if not runtime.supervisor.valid_pane_id(pane_id):
        raise HTTPException(400, f"Invalid pane id {pane_id}")


def _require_date(date: str) -> None:
    if not is_valid_date(date):
        raise HTTPException(400, "date must be YYYY-MM-DD")


# ----------------------------------------------------------------------
# Panes

@router.get("/api/panes")
async def list_panes(runtime: PaneRuntime = Depends(get_runtime_dep)):
    sup = runtime.supervisor
    return {"ok": True, "data": [sup.describe(pid) for pid in sup.pane_ids()]}


@router.get("/api/panes/cwds")
async def get_all_cwds(runtime: PaneRuntime = Depends(get_runtime_dep)):
    cwds = await runtime.supervisor.get_all_cwds()
    return {"ok": True, "data": {str(k): v for k, v in cwds.items()}}


@router.get("/api/panes/{pane_id}")
async def get_pane(pane_id: int, runtime: PaneRuntime = Depends(get_runtime_dep)):
    info = runtime.supervisor.describe(pane_id)
    if not info:
        raise HTTPException(404, "Pane not found")
    return {"ok": True, "data": info}


@router.post("/api/panes/{pane_id}")
async def create_pane(
    pane_id: int,
    payload: dict = Body(default={}),
    runtime: PaneRuntime = Depends(get_runtime_dep),
):
    _require_pane(runtime, pane_id)
    cwd = payload.get("cwd")
    ok = await runtime.supervisor.create_pty(pane_id, cwd)
    return {"ok": ok}


@router.delete("/api/panes/{pane_id}")
async def kill_pane(pane_id: int, runtime: PaneRuntime = Depends(get_runtime_dep)):
    await runtime.supervisor.kill_pty(pane_id)
    return {"ok": True}


@router.post("/api/panes/{pane_id}/input")
async def write_pane(
    pane_id: int,
    payload: dict = Body(...),
    runtime: PaneRuntime = Depends(get_runtime_dep),
):
    data = payload.get("data")
    if not isinstance(data, str):
        raise HTTPException(400, "data must be a string")
    await runtime.supervisor.write(pane_id, data)
    return {"ok": True}


@router.post("/api/panes/{pane_id}/resize")
async def resize_pane(
    pane_id: int,
    payload: dict = Body(...),
    runtime: PaneRuntime = Depends(get_runtime_dep),
):
    try:
        cols = int(payload.get("cols"))
        rows = int(payload.get("rows"))
    except (TypeError, ValueError):
        raise HTTPException(400, "cols and rows must be integers")
    await runtime.supervisor.resize(pane_id, cols, rows)
    return {"ok": True}


@router.get("/api/panes/{pane_id}/cwd")
async def get_pane_cwd(pane_id: int, runtime: PaneRuntime = Depends(get_runtime_dep)):
    return {"ok": True, "data": await runtime.supervisor.get_cwd(pane_id)}


@router.get("/api/panes/{pane_id}/git")
async def get_pane_git(pane_id: int, runtime: PaneRuntime = Depends(get_runtime_dep)):
    status = await runtime.supervisor.get_git_status(pane_id)
    return {"ok": True, "data": status.to_dict() if status else None}


# ----------------------------------------------------------------------
# History

@router.post("/api/history/project")
async def resolve_project(payload: dict = Body(...), runtime: PaneRuntime = Depends(get_runtime_dep)):
    path = payload.get("path")
    if not path or not isinstance(path, str):
        raise HTTPException(400, "path is required")
    return {"ok": True, "data": await runtime.history.get_or_create_project_id(path)}


@router.post("/api/history/{project_id}/exchanges")
async def append_exchange(
    project_id: str,
    payload: dict = Body(...),
    runtime: PaneRuntime = Depends(get_runtime_dep),
):
    kind = payload.get("type")
    if kind not in EXCHANGE_TYPES:
        raise HTTPException(400, f"type must be one of {', '.join(EXCHANGE_TYPES)}")
    try:
        pane_id = int(payload.get("pane_id"))
    except (TypeError, ValueError):
        raise HTTPException(400, "pane_id must be an integer")
    runtime.history.append_exchange(project_id, pane_id, kind, str(payload.get("content") or ""))
    return {"ok": True}


@router.get("/api/history/{project_id}/sessions")
async def list_sessions(project_id: str, runtime: PaneRuntime = Depends(get_runtime_dep)):
    sessions = await runtime.history.get_sessions(project_id)
    return {"ok": True, "data": [s.to_dict() for s in sessions]}


@router.get("/api/history/{project_id}/days/{date}")
async def get_day(project_id: str, date: str, runtime: PaneRuntime = Depends(get_runtime_dep)):
    _require_date(date)
    return {"ok": True, "data": await runtime.history.get_day_content(project_id, date)}


@router.get("/api/history/{project_id}/days/{date}/exchanges")
async def get_day_exchanges(project_id: str, date: str, runtime: PaneRuntime = Depends(get_runtime_dep)):
    _require_date(date)
    exchanges = await runtime.history.get_day_exchanges(project_id, date)
    return {"ok": True, "data": [e.to_dict() for e in exchanges]}


@router.delete("/api/history/{project_id}/days/{date}")
async def delete_day(project_id: str, date: str, runtime: PaneRuntime = Depends(get_runtime_dep)):
    _require_date(date)
    return {"ok": await runtime.history.delete_day(project_id, date)}


@router.get("/api/history/{project_id}/search")
async def search_history(
    project_id: str,
    q: str = Query(..., min_length=1),
    limit: Optional[int] = Query(None, ge=1, le=500),
    runtime: PaneRuntime = Depends(get_runtime_dep),
):
    results = await runtime.history.search(project_id, q, limit or 50)
    return {"ok": True, "data": results}


@router.post("/api/history/flush")
async def flush_history(runtime: PaneRuntime = Depends(get_runtime_dep)):
    await runtime.output.flush()
    written = await runtime.history.flush()
    return {"ok": True, "data": {"written": written}}

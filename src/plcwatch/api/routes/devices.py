"""Dashboard and device command API endpoints."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from plcwatch.core.controller import LifecycleController
from plcwatch.exceptions import (
    CommandFailure,
    ConflictError,
    LoadError,
    NotFoundError,
    PlcWatchError,
)
from plcwatch.models.device import DeviceDraft
from plcwatch.models.display import DashboardView, DisplayRecord

router = APIRouter(tags=["devices"])

_STATUS_CODES: dict[type[PlcWatchError], int] = {
    NotFoundError: 404,
    ConflictError: 409,
    CommandFailure: 502,
    LoadError: 503,
}


def get_controller(request: Request) -> LifecycleController:
    return request.app.state.controller


Controller = Annotated[LifecycleController, Depends(get_controller)]


def _http_error(exc: PlcWatchError) -> HTTPException:
    for exc_type, status_code in _STATUS_CODES.items():
        if isinstance(exc, exc_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))


@router.get("/dashboard", response_model=DashboardView)
async def get_dashboard(controller: Controller) -> DashboardView:
    """Current dashboard view: every device with its connection state."""
    return controller.view()


@router.post("/dashboard/reload", response_model=DashboardView)
async def reload_dashboard(controller: Controller) -> DashboardView:
    """Reload the device list from the backend."""
    try:
        return await controller.initialize()
    except PlcWatchError as exc:
        raise _http_error(exc) from exc


@router.get("/devices/{device_id}", response_model=DisplayRecord)
async def get_device(device_id: int, controller: Controller) -> DisplayRecord:
    try:
        return controller.record(device_id)
    except PlcWatchError as exc:
        raise _http_error(exc) from exc


@router.post("/devices", response_model=DisplayRecord, status_code=201)
async def add_device(draft: DeviceDraft, controller: Controller) -> DisplayRecord:
    """Register a new device."""
    try:
        return await controller.add(draft)
    except PlcWatchError as exc:
        raise _http_error(exc) from exc


@router.put("/devices/{device_id}", response_model=DisplayRecord)
async def edit_device(
    device_id: int, draft: DeviceDraft, controller: Controller
) -> DisplayRecord:
    """Replace a disconnected device's parameters."""
    try:
        return await controller.edit(device_id, draft)
    except PlcWatchError as exc:
        raise _http_error(exc) from exc


@router.delete("/devices/{device_id}", status_code=204)
async def delete_device(device_id: int, controller: Controller) -> Response:
    """Delete a disconnected device."""
    try:
        await controller.delete(device_id)
    except PlcWatchError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=204)


@router.post("/devices/{device_id}/connect", response_model=DisplayRecord)
async def connect_device(device_id: int, controller: Controller) -> DisplayRecord:
    try:
        return await controller.connect(device_id)
    except PlcWatchError as exc:
        raise _http_error(exc) from exc


@router.post("/devices/{device_id}/disconnect", response_model=DisplayRecord)
async def disconnect_device(device_id: int, controller: Controller) -> DisplayRecord:
    try:
        return await controller.disconnect(device_id)
    except PlcWatchError as exc:
        raise _http_error(exc) from exc

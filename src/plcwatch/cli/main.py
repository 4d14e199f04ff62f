"""plcwatch CLI - manage and monitor PLC connections from the terminal."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TypeVar

import click
from pydantic import ValidationError

from plcwatch.config import get_settings
from plcwatch.core.controller import LifecycleController
from plcwatch.exceptions import PlcWatchError
from plcwatch.models.device import DeviceDraft, Endpoint
from plcwatch.models.display import DashboardView, DisplayRecord
from plcwatch.service.simulated import SimulatedConnectionService
from plcwatch.utils.logging import setup_logging

T = TypeVar("T")


def _parse_endpoint(value: str | None, label: str) -> Endpoint | None:
    """Parse HOST:PORT, raising click.BadParameter on malformed input."""
    if value is None:
        return None
    try:
        return Endpoint.parse(value)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint=label) from exc


def _make_draft(**fields) -> DeviceDraft:
    """Build a draft, turning validation errors into a usage error."""
    try:
        return DeviceDraft(**fields)
    except ValidationError as exc:
        messages = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        raise click.UsageError(f"Invalid device parameters: {messages}") from exc


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--json-output", is_flag=True, help="Output in JSON format")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Device list file (default: $PLCWATCH_CONFIG_PATH or plcwatch.json)",
)
@click.pass_context
def cli(ctx: click.Context, debug: bool, json_output: bool, config_path: Path | None) -> None:
    """plcwatch - PLC connection monitoring dashboard."""
    settings = get_settings()
    if config_path is not None:
        settings = settings.model_copy(update={"config_path": config_path})
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug
    ctx.obj["json_output"] = json_output
    ctx.obj["settings"] = settings
    setup_logging(
        level="DEBUG" if debug else settings.log_level,
        json_output=json_output or settings.json_logs,
    )


def _run(
    ctx: click.Context,
    action: Callable[[LifecycleController, SimulatedConnectionService], Awaitable[T]],
) -> T:
    """Initialize a controller against the configured backend and run *action*."""
    settings = ctx.obj["settings"]

    async def _main() -> T:
        service = SimulatedConnectionService(
            settings.config_path,
            telemetry_interval=settings.telemetry_interval_s,
            error_every=settings.error_every,
        )
        controller = LifecycleController(service)
        try:
            await controller.initialize()
            return await action(controller, service)
        finally:
            await controller.shutdown()
            await service.close()

    try:
        return asyncio.run(_main())
    except PlcWatchError as exc:
        click.echo(f"ERROR: {exc}", err=True)
        ctx.exit(1)
        return None


def _echo_records(ctx: click.Context, records: list[DisplayRecord]) -> None:
    if ctx.obj.get("json_output"):
        click.echo(json.dumps([r.model_dump(mode="json") for r in records], indent=2))
        return
    if not records:
        click.echo("No devices configured.")
        return
    click.echo(
        f"{'ID':>4}  {'Name':<24}  {'Status':<12}  {'Device':<21}  "
        f"{'Local':<21}  {'Last received':<19}"
    )
    click.echo("-" * 112)
    for r in records:
        click.echo(
            f"{r.id:>4}  {r.name:<24}  {r.phase:<12}  {str(r.device_address):<21}  "
            f"{str(r.local_address):<21}  {r.last_received:<19}"
        )


def _echo_view(ctx: click.Context, view: DashboardView) -> None:
    if ctx.obj.get("json_output"):
        click.echo(json.dumps(view.model_dump(mode="json"), indent=2))
        return
    click.echo(f"{view.connected_count}/{view.total_count} connected")
    _echo_records(ctx, view.devices)


@cli.command("list")
@click.pass_context
def list_devices(ctx: click.Context) -> None:
    """List configured devices."""

    async def _action(controller: LifecycleController, _service) -> DashboardView:
        return controller.view()

    _echo_view(ctx, _run(ctx, _action))


@cli.command()
@click.argument("name")
@click.option("--table", "table_name", default="", help="Backend storage table name")
@click.option("--device", "device_address", required=True, help="PLC address as HOST:PORT")
@click.option("--local", "local_address", required=True, help="Local address as HOST:PORT")
@click.pass_context
def add(
    ctx: click.Context, name: str, table_name: str, device_address: str, local_address: str
) -> None:
    """Add a new device."""
    draft = _make_draft(
        name=name,
        table_name=table_name,
        device_address=_parse_endpoint(device_address, "--device"),
        local_address=_parse_endpoint(local_address, "--local"),
    )

    async def _action(controller: LifecycleController, _service) -> DisplayRecord:
        return await controller.add(draft)

    record = _run(ctx, _action)
    if ctx.obj.get("json_output"):
        _echo_records(ctx, [record])
    else:
        click.echo(f"Added device {record.id}: {record.name}")


@cli.command()
@click.argument("device_id", type=int)
@click.option("--name", default=None)
@click.option("--table", "table_name", default=None)
@click.option("--device", "device_address", default=None, help="PLC address as HOST:PORT")
@click.option("--local", "local_address", default=None, help="Local address as HOST:PORT")
@click.pass_context
def edit(
    ctx: click.Context,
    device_id: int,
    name: str | None,
    table_name: str | None,
    device_address: str | None,
    local_address: str | None,
) -> None:
    """Edit a device; options that are not given keep their value."""
    changes = {
        "name": name,
        "table_name": table_name,
        "device_address": _parse_endpoint(device_address, "--device"),
        "local_address": _parse_endpoint(local_address, "--local"),
    }
    changes = {k: v for k, v in changes.items() if v is not None}

    async def _action(controller: LifecycleController, _service) -> DisplayRecord:
        current = controller.registry.get(device_id).to_draft()
        draft = _make_draft(**{**current.model_dump(), **changes})
        return await controller.edit(device_id, draft)

    record = _run(ctx, _action)
    if ctx.obj.get("json_output"):
        _echo_records(ctx, [record])
    else:
        click.echo(f"Updated device {record.id}: {record.name}")


@cli.command()
@click.argument("device_id", type=int)
@click.pass_context
def delete(ctx: click.Context, device_id: int) -> None:
    """Delete a device."""

    async def _action(controller: LifecycleController, _service) -> None:
        await controller.delete(device_id)

    _run(ctx, _action)
    click.echo(f"Deleted device {device_id}")


@cli.command("connect-test")
@click.argument("device_id", type=int)
@click.pass_context
def connect_test(ctx: click.Context, device_id: int) -> None:
    """Connect to a device, show its state, then disconnect."""

    async def _action(controller: LifecycleController, _service) -> DisplayRecord:
        record = await controller.connect(device_id)
        await controller.disconnect(device_id)
        return record

    record = _run(ctx, _action)
    _echo_records(ctx, [record])


@cli.command()
@click.option("--device", "device_ids", type=int, multiple=True, help="Device ID (repeatable)")
@click.option("--duration", type=float, default=10.0, help="Seconds to watch")
@click.pass_context
def watch(ctx: click.Context, device_ids: tuple[int, ...], duration: float) -> None:
    """Connect devices and print telemetry as it arrives."""
    json_output = ctx.obj.get("json_output")

    async def _action(controller: LifecycleController, _service) -> None:
        seen: dict[int, tuple[str, object]] = {}

        def _on_view(view: DashboardView) -> None:
            for r in view.devices:
                marker = (r.last_received, r.last_error_at)
                if r.data is None or seen.get(r.id) == marker:
                    continue
                seen[r.id] = marker
                if json_output:
                    click.echo(json.dumps(r.model_dump(mode="json")))
                    continue
                line = f"[{r.last_received}] #{r.id} {r.name}: {json.dumps(r.data)}"
                if r.last_error:
                    line += f"  (last error: {r.last_error} [{r.last_error_hex}])"
                click.echo(line)

        targets = list(device_ids) or controller.registry.ids()
        connected: list[int] = []
        for device_id in targets:
            try:
                await controller.connect(device_id)
                connected.append(device_id)
            except PlcWatchError as exc:
                click.echo(f"ERROR: {exc}", err=True)
        if not connected:
            click.echo("No devices connected.")
            return

        controller.add_listener(_on_view)
        try:
            await asyncio.sleep(duration)
        finally:
            controller.remove_listener(_on_view)
            for device_id in connected:
                try:
                    await controller.disconnect(device_id)
                except PlcWatchError as exc:
                    click.echo(f"ERROR: {exc}", err=True)

    try:
        _run(ctx, _action)
    except KeyboardInterrupt:
        pass


@cli.command()
@click.option("--host", default=None, help="Bind address (default: $PLCWATCH_API_HOST)")
@click.option("--port", type=int, default=None, help="HTTP port (default: $PLCWATCH_API_PORT)")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None) -> None:
    """Start the HTTP API server."""
    import uvicorn

    from plcwatch.api.app import create_app

    settings = ctx.obj["settings"]
    app = create_app(settings=settings)
    uvicorn.run(app, host=host or settings.api_host, port=port or settings.api_port)

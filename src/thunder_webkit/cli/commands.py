"""
CLI commands for controlling a Thunder WebKit browser.

Usage:
    thunder-webkit status
    thunder-webkit start | stop | resume
    thunder-webkit launch <url> [--follow]
    thunder-webkit logs
"""

import asyncio
from typing import Optional

import typer

from thunder_webkit.api import SessionEvent, ThunderWebkitAPI
from thunder_webkit.config import ThunderConfig
from thunder_webkit.errors import ThunderError
from thunder_webkit.inspector import WebInspectorClient
from thunder_webkit.session import LifecycleController, ThunderClient

HostOption = typer.Option(None, "--host", "-H", help="Thunder host (default: $THUNDER_HOST)")
CallsignOption = typer.Option(
    None, "--callsign", "-c", help="Plugin callsign (default: $THUNDER_CALLSIGN)"
)


def load_config(host: Optional[str] = None, callsign: Optional[str] = None) -> ThunderConfig:
    """Read config from the environment and apply command-line overrides."""
    config = ThunderConfig.from_env()
    if host:
        config.host = host
    if callsign:
        config.callsign = callsign
    return config


def _make_client(config: ThunderConfig) -> ThunderClient:
    return ThunderClient(
        host=config.host,
        callsign=config.callsign,
        jsonrpc_id=config.jsonrpc_id,
        port=config.port,
        connect_timeout=config.connect_timeout,
        rpc_timeout=config.rpc_timeout,
    )


async def _fetch_state(config: ThunderConfig) -> str:
    client = _make_client(config)
    try:
        await client.connect()
        state = await client.get_state()
        return state.value
    finally:
        await client.disconnect()


async def _run_transition(config: ThunderConfig, operation: str) -> None:
    client = _make_client(config)
    lifecycle = LifecycleController(client, http_timeout=config.http_timeout)
    try:
        await client.connect()
        await getattr(lifecycle, operation)()
    finally:
        await lifecycle.aclose()
        await client.disconnect()


def _print_event(event: SessionEvent) -> None:
    typer.echo(f"[{event.source}] {event.type}: {event.message}")


async def _launch(config: ThunderConfig, url: str, follow: bool) -> bool:
    ok = True

    def on_event(event: SessionEvent) -> None:
        nonlocal ok
        if event.type == "error":
            ok = False
        _print_event(event)

    api = ThunderWebkitAPI(config, on_event)
    try:
        await api.start()
        if ok:
            await api.launch(url)
        if ok and follow:
            await asyncio.Event().wait()
    finally:
        await api.quit()
    return ok


async def _stream_logs(config: ThunderConfig) -> None:
    def on_message(error: Optional[BaseException], text: Optional[str]) -> None:
        if error is not None:
            typer.echo(f"❌ {error}", err=True)
        else:
            typer.echo(text)

    inspector = WebInspectorClient(
        host=config.inspector_host,
        on_message=on_message,
        port=config.webinspector_port,
        connect_timeout=config.connect_timeout,
    )
    try:
        await inspector.connect()
        await asyncio.Event().wait()
    finally:
        await inspector.disconnect()


def _fail(message: str) -> None:
    typer.echo(f"❌ {message}")
    raise typer.Exit(code=1)


def register_commands(app: typer.Typer) -> None:
    """Attach every command to ``app``."""

    @app.command("status")
    def status(host: Optional[str] = HostOption, callsign: Optional[str] = CallsignOption):
        """Show the reported state of the browser plugin."""
        config = load_config(host, callsign)
        try:
            state = asyncio.run(_fetch_state(config))
        except ThunderError as e:
            _fail(str(e))
        typer.echo(f"📡 {config.callsign}@{config.host}: {state}")

    def _transition_command(operation: str, done_message: str):
        def command(
            host: Optional[str] = HostOption,
            callsign: Optional[str] = CallsignOption,
        ):
            config = load_config(host, callsign)
            try:
                asyncio.run(_run_transition(config, operation))
            except ThunderError as e:
                _fail(f"{operation} failed: {e}")
            typer.echo(f"✅ {config.callsign} {done_message}")

        return command

    app.command("start", help="Activate the browser plugin.")(
        _transition_command("start", "activated")
    )
    app.command("stop", help="Deactivate the browser plugin.")(
        _transition_command("stop", "deactivated")
    )
    app.command("resume", help="Resume a suspended browser plugin.")(
        _transition_command("resume", "resumed")
    )

    @app.command("launch")
    def launch(
        url: str = typer.Argument(help="URL to load"),
        follow: bool = typer.Option(
            False, "--follow", "-f", help="Keep running and print console output"
        ),
        host: Optional[str] = HostOption,
        callsign: Optional[str] = CallsignOption,
    ):
        """Restart the browser plugin and load a URL."""
        config = load_config(host, callsign)
        try:
            ok = asyncio.run(_launch(config, url, follow))
        except KeyboardInterrupt:
            typer.echo("\n🛑 Stopped.")
            return
        if not ok:
            raise typer.Exit(code=1)

    @app.command("logs")
    def logs(host: Optional[str] = HostOption):
        """Stream the browser's console output until Ctrl+C."""
        config = load_config(host)
        typer.echo(f"🖥️  Console of {config.inspector_host}:{config.webinspector_port}")
        typer.echo("   Press Ctrl+C to stop.\n")
        try:
            asyncio.run(_stream_logs(config))
        except KeyboardInterrupt:
            typer.echo("\n🛑 Stopped.")
        except ThunderError as e:
            _fail(str(e))

"""
FinTrack CLI.

Developer commands for running the server and poking at the realtime
gateway.
"""

import asyncio
import json
import sys
import time

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(
    name="fintrack",
    help="FinTrack realtime sync CLI",
    add_completion=False,
)
console = Console()

VERSION = "0.1.0"


# =============================================================================
# Server Commands
# =============================================================================

@app.command()
def serve(
    host: str = typer.Option(None, help="Bind address (default: REST_API_HOST)"),
    port: int = typer.Option(None, help="Port (default: REST_API_PORT)"),
    reload: bool = typer.Option(False, "--reload", help="Auto-reload on code changes"),
):
    """Run the REST API with the realtime gateway."""
    import uvicorn

    from shared.config.settings import settings

    host = host or settings.rest_api_host
    port = port or settings.rest_api_port
    console.print(f"[blue]Serving on http://{host}:{port} (ws://{host}:{port}/ws)[/blue]")
    uvicorn.run("rest_api.main:app", host=host, port=port, reload=reload)


@app.command()
def token(
    user_id: str = typer.Argument(..., help="User id to put in the sub claim"),
    ttl: int = typer.Option(None, help="Lifetime in seconds (default: JWT_ACCESS_TOKEN_EXPIRE_MINUTES)"),
):
    """Sign a development access token."""
    from shared.config.settings import settings
    from shared.security.auth import sign_access_token

    if settings.environment == "production":
        console.print("[red]Refusing to sign tokens in production[/red]")
        raise typer.Exit(1)

    console.print(sign_access_token(user_id, ttl_seconds=ttl), soft_wrap=True)


# =============================================================================
# WebSocket Commands
# =============================================================================

@app.command()
def ws_test(
    url: str = typer.Option("ws://localhost:8000/ws", help="WebSocket URL"),
    access_token: str = typer.Option(None, "--token", help="Access token to authenticate with"),
):
    """Test WebSocket connectivity: welcome, authenticate, ping."""

    async def _test():
        import websockets

        console.print(f"[blue]Testing WebSocket: {url}[/blue]")

        try:
            async with websockets.connect(url, close_timeout=5) as ws:
                welcome = await asyncio.wait_for(ws.recv(), timeout=5)
                console.print(f"[green]✓ Connected! {welcome}[/green]")

                if access_token:
                    await ws.send(json.dumps({"type": "authenticate", "token": access_token}))
                    reply = json.loads(await asyncio.wait_for(ws.recv(), timeout=5))
                    if reply.get("type") == "authenticated":
                        console.print(f"[green]✓ Authenticated as {reply['payload']['userId']}[/green]")
                    else:
                        console.print(f"[red]✗ {reply.get('type')}: {reply.get('payload')}[/red]")

                start = time.time()
                await ws.send(json.dumps({"type": "ping"}))
                response = await asyncio.wait_for(ws.recv(), timeout=5)
                elapsed = (time.time() - start) * 1000
                console.print(f"[green]✓ {response} ({elapsed:.0f}ms)[/green]")
        except asyncio.TimeoutError:
            console.print("[red]✗ Connection timed out[/red]")
            raise typer.Exit(1)
        except OSError as e:
            console.print(f"[red]✗ Connection failed: {e}[/red]")
            raise typer.Exit(1)

    asyncio.run(_test())


@app.command()
def watch(
    url: str = typer.Option(None, help="WebSocket URL (default: FINTRACK_CLIENT_URL)"),
    access_token: str = typer.Option(..., "--token", help="Access token"),
):
    """Run a client session and print every event it receives."""
    from sync_client.config import SessionSettings
    from sync_client.session import STATUS_EVENT, WILDCARD, ClientSessionManager
    from sync_client.transport import websockets_transport_factory

    settings = SessionSettings()

    def _print_event(envelope):
        event = envelope["event"]
        style = "yellow" if event == STATUS_EVENT else "cyan"
        console.print(f"[{style}]{event}[/{style}] {json.dumps(envelope['data'], default=str)}")

    async def _watch():
        session = ClientSessionManager(
            url or settings.url,
            websockets_transport_factory,
            token=access_token,
            settings=settings,
        )
        session.on(WILDCARD, _print_event)
        await session.connect()
        try:
            while True:
                await asyncio.sleep(3600)
        finally:
            await session.destroy()

    try:
        asyncio.run(_watch())
    except KeyboardInterrupt:
        console.print("[blue]Stopped[/blue]")


# =============================================================================
# Health Commands
# =============================================================================

@app.command()
def health(
    base_url: str = typer.Option("http://localhost:8000", help="Server base URL"),
):
    """Probe /health and /ws/health and show realtime connection counts."""
    import httpx

    def _probe(client: httpx.Client, path: str) -> tuple[str, dict]:
        started = time.perf_counter()
        try:
            response = client.get(path)
        except httpx.HTTPError as e:
            return f"[red]unreachable ({type(e).__name__})[/red]", {}
        took = f"{(time.perf_counter() - started) * 1000:.0f}ms"
        if response.status_code != 200:
            return f"[red]HTTP {response.status_code}[/red] {took}", {}
        return f"[green]ok[/green] {took}", response.json()

    with httpx.Client(base_url=base_url, timeout=5.0) as client:
        api_status, _ = _probe(client, "/health")
        ws_status, ws_body = _probe(client, "/ws/health")

    table = Table(title=f"FinTrack @ {base_url}")
    table.add_column("Check", style="cyan")
    table.add_column("Result")
    table.add_row("REST API", api_status)
    table.add_row("Realtime gateway", ws_status)

    registry = ws_body.get("registry", {})
    dispatch = ws_body.get("dispatch", {})
    if registry:
        table.add_row("Sockets (authenticated / total)",
                      f"{registry['authenticated_connections']} / {registry['total_connections']}")
        table.add_row("Users online", str(registry["unique_users"]))
    if dispatch:
        table.add_row("Events dispatched", str(dispatch["events_dispatched"]))
        table.add_row("Send failures", str(dispatch["send_failures"]))

    console.print(table)


@app.command()
def version():
    """Show the installed versions of the package and its realtime stack."""
    from importlib.metadata import PackageNotFoundError, version as dist_version

    table = Table(title="FinTrack")
    table.add_column("Distribution", style="cyan")
    table.add_column("Version", style="green")
    table.add_row("fintrack-realtime", VERSION)
    for dist in ("fastapi", "websockets", "httpx", "pydantic"):
        try:
            table.add_row(dist, dist_version(dist))
        except PackageNotFoundError:
            table.add_row(dist, "[red]missing[/red]")
    table.add_row("python", sys.version.split()[0])

    console.print(table)


if __name__ == "__main__":
    app()

"""Typer CLI for FlowDeploy-Engine."""

import asyncio
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(name="flowdeploy", help="FlowDeploy-Engine: per-tenant workflow deployment")
console = Console()


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Bind host"),
    port: int = typer.Option(8080, help="Bind port"),
):
    """Start the FlowDeploy-Engine API server."""
    import uvicorn
    from flowdeploy_engine.app import create_app

    console.print(f"[bold green]Starting FlowDeploy-Engine on {host}:{port}[/bold green]")
    uvicorn.run(create_app(), host=host, port=port)


async def _deploy(tenant_id: str, provider: Optional[str]):
    from flowdeploy_engine.deps import close_clients, get_db, get_deployment_facade

    db = get_db()
    await db.init()
    await db.create_all()
    facade = get_deployment_facade()
    try:
        async with db.get_session() as session:
            result = await facade.deploy(session, tenant_id, provider)
        await facade.drain()
        return result
    finally:
        await close_clients()
        await db.close()


@app.command()
def deploy(
    tenant_id: str = typer.Argument(..., help="Tenant id to deploy"),
    provider: Optional[str] = typer.Option(None, help="Mailbox provider: gmail or outlook"),
):
    """Deploy or redeploy a tenant's workflow directly against the engine."""
    from flowdeploy_engine.common.config import get_settings
    from flowdeploy_engine.common.logging import setup_logging
    from flowdeploy_engine.tenants.schemas import normalize_provider

    setup_logging(get_settings().log_level)
    if provider and normalize_provider(provider) is None:
        console.print(f"[bold red]Unknown provider:[/bold red] {provider}")
        raise typer.Exit(2)

    result = asyncio.run(_deploy(tenant_id, normalize_provider(provider)))
    if result.success:
        console.print(
            f"[bold green]DEPLOYED[/bold green] — workflow {result.workflow_id} v{result.version}"
        )
    else:
        console.print(f"[bold red]{result.error_kind}[/bold red] — {result.error}")
        raise typer.Exit(1)


@app.command()
def check():
    """Check that the remote engine is reachable with the configured API key."""
    from flowdeploy_engine.deps import close_clients, get_deployment_facade

    async def run():
        try:
            return await get_deployment_facade().check_availability()
        finally:
            await close_clients()

    result = asyncio.run(run())
    if result.available:
        console.print("[bold green]AVAILABLE[/bold green]")
    else:
        console.print(f"[bold red]UNAVAILABLE[/bold red] — {result.error}")
        raise typer.Exit(1)


@app.command()
def health(
    url: str = typer.Option("http://localhost:8080", help="Server URL"),
):
    """Check FlowDeploy-Engine server health."""
    import httpx

    try:
        resp = httpx.get(f"{url}/health", timeout=5)
        data = resp.json()
        console.print(f"[bold green]{data['status']}[/bold green] — v{data['version']}")
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def breakers(
    url: str = typer.Option("http://localhost:8080", help="Server URL"),
):
    """Show circuit breaker states of a running server."""
    import httpx

    try:
        resp = httpx.get(f"{url}/health/breakers", timeout=5)
        resp.raise_for_status()
        rows = resp.json()
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    table = Table(title="Circuit breakers")
    table.add_column("Dependency")
    table.add_column("State")
    table.add_column("Failures", justify="right")
    table.add_column("Successes", justify="right")
    table.add_column("Retry after (s)", justify="right")
    for row in rows:
        table.add_row(
            row["name"],
            row["state"],
            str(row["failure_count"]),
            str(row["success_count"]),
            f"{row['retry_after']:.1f}",
        )
    if not rows:
        console.print("No breakers have been used yet")
        return
    console.print(table)


if __name__ == "__main__":
    app()

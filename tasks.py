"""Invoke tasks for CrowdVine application management."""

import sys
from pathlib import Path

from invoke import task
from invoke.context import Context

LOG_FILE = Path("data/crowdvine.log")


@task
def start(ctx: Context, host: str = "0.0.0.0", port: int = 8000, reload: bool = False) -> None:
    """Start the CrowdVine API in the foreground.

    Args:
        ctx: Invoke context
        host: Host to bind to (default: 0.0.0.0)
        port: Port to bind to (default: 8000)
        reload: Enable auto-reload for development
    """
    cmd = f"uv run crowdvine-server start --host {host} --port {port} --foreground"
    if reload:
        cmd += " --reload"

    try:
        ctx.run(cmd, pty=True)
    except KeyboardInterrupt:
        print("\nServer stopped")
        sys.exit(0)


@task(name="start-background")
def start_background(ctx: Context, host: str = "0.0.0.0", port: int = 8000, workers: int = 2) -> None:
    """Start the API in the background with several workers."""
    ctx.run(f"uv run crowdvine-server start --host {host} --port {port} --workers {workers}")


@task
def stop(ctx: Context) -> None:
    """Stop the background server."""
    ctx.run("uv run crowdvine-server stop")


@task
def restart(ctx: Context, host: str = "0.0.0.0", port: int = 8000) -> None:
    ctx.run(f"uv run crowdvine-server restart --host {host} --port {port}")


@task
def status(ctx: Context) -> None:
    ctx.run("uv run crowdvine-server status")


@task
def logs(ctx: Context, follow: bool = False, lines: int = 50) -> None:
    """View the background server log.

    Args:
        ctx: Invoke context
        follow: Follow log output (like tail -f)
        lines: Number of lines to show (default: 50)
    """
    if not LOG_FILE.exists():
        print("No log file found. Server may not have been started in background mode.")
        return
    if follow:
        ctx.run(f"tail -f {LOG_FILE}", pty=True)
    else:
        ctx.run(f"tail -n {lines} {LOG_FILE}")


@task
def test(ctx: Context, verbose: bool = False, coverage: bool = False, unit: bool = False) -> None:
    """Run the test suite.

    Args:
        ctx: Invoke context
        verbose: Enable verbose output
        coverage: Run with coverage report
        unit: Skip tests that need MongoDB
    """
    cmd = "uv run pytest"
    if verbose:
        cmd += " -v"
    if unit:
        cmd += " -m 'not mongo'"
    if coverage:
        cmd += " --cov=crowdvine --cov-report=term-missing"
    ctx.run(cmd, pty=True)


@task(name="create-admin")
def create_admin(ctx: Context, email: str, name: str = "") -> None:
    """Create an admin account (prompts for the password)."""
    cmd = f"uv run crowdvine-admin add {email} --admin"
    if name:
        cmd += f" --name '{name}'"
    ctx.run(cmd, pty=True)


@task(name="seed-zones")
def seed_zones(ctx: Context) -> None:
    """Create the standard Swedish delivery zones."""
    ctx.run("uv run crowdvine-maintenance seed-zones")


@task(name="reset-quotas")
def reset_quotas(ctx: Context) -> None:
    """Reset monthly invite quotas; run on the first of each month."""
    ctx.run("uv run crowdvine-maintenance reset-quotas")


@task(name="check-pallets")
def check_pallets(ctx: Context) -> None:
    ctx.run("uv run crowdvine-maintenance check-pallets")


@task(name="cleanup-invitations")
def cleanup_invitations(ctx: Context) -> None:
    ctx.run("uv run crowdvine-maintenance cleanup-invitations")


@task(name="sample-upload")
def sample_upload(ctx: Context, rows: int = 20, output: str = "data/sample_products.csv") -> None:
    """Write a sample bulk-upload CSV for trying the admin upload flow."""
    ctx.run(f"uv run python scripts/generate_sample_upload.py --rows {rows} --output {output}")


@task
def clean(ctx: Context) -> None:
    """Remove caches and build artifacts."""
    for pattern in ["__pycache__", "*.pyc", "*.pyo", ".pytest_cache"]:
        ctx.run(f"find . -name '{pattern}' -exec rm -rf {{}} + 2>/dev/null || true", warn=True)
    for path in ["build", "dist", "*.egg-info", ".eggs"]:
        ctx.run(f"rm -rf {path} 2>/dev/null || true", warn=True)
    print("Cleanup complete")

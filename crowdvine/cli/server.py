"""CrowdVine server control script.

Usage:
    crowdvine-server start [--port PORT] [--host HOST] [--workers N] [--reload] [--foreground]
    crowdvine-server stop
    crowdvine-server restart [--port PORT] [--host HOST]
    crowdvine-server status
"""

import argparse
import os
import signal
import subprocess
import sys
import time
from pathlib import Path

import httpx

from crowdvine.config import settings

RUN_DIR = Path("data")
PID_FILE = RUN_DIR / "crowdvine.pid"
LOG_FILE = RUN_DIR / "crowdvine.log"
APP_PATH = "crowdvine.main:app"


def read_pid() -> int | None:
    """PID from the pid file if that process is still alive."""
    if not PID_FILE.exists():
        return None
    try:
        pid = int(PID_FILE.read_text().strip())
        os.kill(pid, 0)
    except (ValueError, ProcessLookupError, PermissionError):
        PID_FILE.unlink(missing_ok=True)
        return None
    return pid


def find_uvicorn_process() -> int | None:
    """Look for a uvicorn process serving the app without a pid file."""
    try:
        result = subprocess.run(
            ["pgrep", "-f", f"uvicorn {APP_PATH}"], capture_output=True, text=True
        )
    except FileNotFoundError:
        return None
    if result.returncode != 0 or not result.stdout.strip():
        return None
    return int(result.stdout.split()[0])


def running_pid() -> int | None:
    return read_pid() or find_uvicorn_process()


def build_command(host: str, port: int, workers: int, reload: bool) -> list[str]:
    cmd = [sys.executable, "-m", "uvicorn", APP_PATH, "--host", host, "--port", str(port)]
    if reload:
        # uvicorn refuses --workers together with --reload
        cmd.append("--reload")
    elif workers > 1:
        cmd += ["--workers", str(workers)]
    return cmd


def start_server(
    host: str, port: int, workers: int = 1, reload: bool = False, foreground: bool = False
) -> bool:
    pid = running_pid()
    if pid:
        print(f"Server is already running (PID: {pid})")
        return False

    RUN_DIR.mkdir(parents=True, exist_ok=True)
    cmd = build_command(host, port, workers, reload)
    print(f"Starting CrowdVine on http://{host}:{port}")

    if foreground:
        try:
            subprocess.run(cmd)
        except KeyboardInterrupt:
            print("\nServer stopped")
        return True

    with open(LOG_FILE, "w") as log:
        process = subprocess.Popen(cmd, stdout=log, stderr=subprocess.STDOUT, start_new_session=True)

    time.sleep(1)
    if process.poll() is not None:
        print(f"Server exited immediately; see {LOG_FILE}")
        return False
    PID_FILE.write_text(str(process.pid))
    print(f"Server started with PID {process.pid}, logging to {LOG_FILE}")
    return True


def stop_server(grace_seconds: float = 5.0) -> bool:
    """SIGTERM the server, escalating to SIGKILL after the grace period."""
    pid = running_pid()
    if not pid:
        print("Server is not running")
        return False

    print(f"Stopping server (PID: {pid})...")
    try:
        os.kill(pid, signal.SIGTERM)
        deadline = time.monotonic() + grace_seconds
        while time.monotonic() < deadline:
            time.sleep(0.25)
            try:
                os.kill(pid, 0)
            except ProcessLookupError:
                break
        else:
            print("Server did not stop in time, sending SIGKILL")
            os.kill(pid, signal.SIGKILL)
    except ProcessLookupError:
        pass
    except PermissionError:
        print(f"Permission denied to stop process {pid}")
        return False

    PID_FILE.unlink(missing_ok=True)
    print("Server stopped")
    return True


def server_status(host: str, port: int) -> bool:
    pid = running_pid()
    if not pid:
        print("CrowdVine is not running")
        return False

    print(f"CrowdVine is running (PID: {pid})")
    health_host = "127.0.0.1" if host in ("0.0.0.0", "::") else host
    try:
        response = httpx.get(f"http://{health_host}:{port}/health", timeout=2.0)
        data = response.json()
        print(f"  Status:   {data.get('status', 'unknown')}")
        print(f"  Database: {data.get('database', 'unknown')}")
        print(f"  Version:  {data.get('version', 'unknown')}")
    except (httpx.HTTPError, ValueError) as e:
        print(f"  Health check failed: {e}")
    return True


def _add_bind_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--host", default=settings.host, help=f"Bind address (default: {settings.host})")
    parser.add_argument(
        "--port", "-p", type=int, default=settings.port, help=f"Port (default: {settings.port})"
    )


def main() -> int:
    parser = argparse.ArgumentParser(description="CrowdVine server control")
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    start_parser = subparsers.add_parser("start", help="Start the server")
    _add_bind_args(start_parser)
    start_parser.add_argument("--workers", "-w", type=int, default=settings.workers)
    start_parser.add_argument("--reload", "-r", action="store_true", help="Auto-reload on code changes")
    start_parser.add_argument("--foreground", "-f", action="store_true", help="Run in the foreground")

    subparsers.add_parser("stop", help="Stop the server")

    restart_parser = subparsers.add_parser("restart", help="Restart the server")
    _add_bind_args(restart_parser)
    restart_parser.add_argument("--workers", "-w", type=int, default=settings.workers)

    status_parser = subparsers.add_parser("status", help="Show server status")
    _add_bind_args(status_parser)

    args = parser.parse_args()
    if not args.command:
        parser.print_help()
        return 1

    try:
        if args.command == "start":
            ok = start_server(args.host, args.port, args.workers, args.reload, args.foreground)
        elif args.command == "stop":
            ok = stop_server()
        elif args.command == "restart":
            stop_server()
            time.sleep(1)
            ok = start_server(args.host, args.port, args.workers)
        else:
            ok = server_status(args.host, args.port)
    except KeyboardInterrupt:
        print("\nInterrupted")
        return 130
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())

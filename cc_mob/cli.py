"""
Command-line entry point for the cc-mob server.

Usage:
    cc-mob                # localhost only
    cc-mob --lan          # reachable from the local network
    cc-mob --port 4000
"""

import socket
import sys

import httpx

from . import __version__
from .config import Settings, get_lan_ip
from .credentials import CredentialManager
from .errors import CredentialStoreError


def is_port_in_use(port: int) -> bool:
    """Check if a port is already in use."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        return s.connect_ex(('127.0.0.1', port)) == 0


def is_cc_mob_running(port: int) -> bool:
    """Check whether the process holding the port answers like a cc-mob server."""
    try:
        response = httpx.get(f"http://127.0.0.1:{port}/api/health", timeout=2.0)
        data = response.json() if response.status_code == 200 else None
        return isinstance(data, dict) and data.get("ok") is True
    except (httpx.HTTPError, ValueError):
        return False


def print_banner(settings: Settings, token: str):
    """Print where to reach the server and how to authenticate a phone."""
    print("")
    print(f"\033[1mcc-mob\033[0m v{__version__}")
    print("")
    print(f"  Local:  {settings.local_url}")
    if settings.lan_mode:
        lan_url = f"http://{get_lan_ip()}:{settings.port}"
        print(f"  LAN:    {lan_url}")
        print(f"  Auth:   {lan_url}/?token={token}")
    else:
        print("  \033[38;2;107;114;128mLAN:    disabled (use --lan to enable)\033[0m")
        print(f"  Auth:   {settings.local_url}/?token={token}")
    print("")
    print("  Open the Auth URL on your phone. The token is exchanged for a secure cookie.")
    print("")


def main():
    """CLI entry point for cc-mob."""
    # Ensure output is not buffered (for background processes)
    sys.stdout.reconfigure(line_buffering=True)

    import argparse

    parser = argparse.ArgumentParser(
        description="Answer your coding agent's questions from your phone"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port to listen on (default: $PORT or 3456)"
    )
    parser.add_argument(
        "--lan",
        action="store_true",
        default=None,
        help="Bind to all interfaces so phones on the LAN can connect"
    )
    args = parser.parse_args()

    settings = Settings.from_env(port=args.port, lan_mode=args.lan)

    credentials = CredentialManager(settings.env_path)
    try:
        token = credentials.load()
    except CredentialStoreError as e:
        print(f"[Server] Error: {e}")
        sys.exit(1)

    if is_port_in_use(settings.port):
        if is_cc_mob_running(settings.port):
            print(f"[Server] Error: cc-mob is already running on port {settings.port}")
        else:
            print(f"[Server] Error: port {settings.port} is already in use")
        print("[Server] Stop the other process or pass --port")
        sys.exit(1)

    from .server import create_app, run_server

    app = create_app(settings, credentials)
    print_banner(settings, token)
    run_server(settings, app)


if __name__ == "__main__":
    main()

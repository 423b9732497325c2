#!/usr/bin/env python3
"""Start the dispatch API under uvicorn, honouring the PORT environment variable."""

import os
import subprocess
import sys


def main() -> int:
    port = os.environ.get("PORT", "8000")
    try:
        port_int = int(port)
    except ValueError:
        print(f"Warning: Invalid PORT value '{port}', using default 8000", file=sys.stderr)
        port_int = 8000

    src_path = os.path.abspath("src")
    if os.path.isdir(src_path):
        pythonpath = os.environ.get("PYTHONPATH", "")
        os.environ["PYTHONPATH"] = f"{src_path}:{pythonpath}" if pythonpath else src_path

    cmd = [
        sys.executable,
        "-m",
        "uvicorn",
        "dispatch_app.main:app",
        "--host",
        "0.0.0.0",
        "--port",
        str(port_int),
        "--proxy-headers",
        "--forwarded-allow-ips",
        "*",
    ]
    print(f"Starting dispatch API on port {port_int}...", file=sys.stderr)
    try:
        return subprocess.call(cmd)
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main())

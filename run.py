#!/usr/bin/env python3
"""Start the park valuation wizard.

Usage:
  python run.py                          → JSON API on http://127.0.0.1:8000
  python run.py --host 0.0.0.0 --port 9000 --no-reload
  python run.py --cli                    → interactive project wizard in the terminal
"""

import argparse
import sys
from pathlib import Path

# Ensure the project root is on sys.path
sys.path.insert(0, str(Path(__file__).resolve().parent))


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Mobile home park valuation wizard")
    parser.add_argument("--cli", action="store_true", help="run the terminal wizard instead of the API")
    parser.add_argument("--host", default="127.0.0.1", help="interface for the API server")
    parser.add_argument("--port", type=int, default=8000, help="port for the API server")
    parser.add_argument("--no-reload", dest="reload", action="store_false", help="disable auto-reload")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    if args.cli:
        from parkval.main import main as cli_main
        cli_main()
        return

    import uvicorn
    from rich.console import Console
    from rich.panel import Panel

    Console().print(Panel(
        f"[bold]Park Valuation API[/bold]\n"
        f"Projects, auto-fill, documents and reports at http://{args.host}:{args.port}\n"
        f"[dim]Interactive docs: /docs  •  Ctrl+C to stop[/dim]",
        border_style="blue",
        expand=False,
    ))
    uvicorn.run("parkval.web.server:app", host=args.host, port=args.port, reload=args.reload)


if __name__ == "__main__":
    main()

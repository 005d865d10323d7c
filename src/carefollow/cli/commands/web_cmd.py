from __future__ import annotations

import argparse

from carefollow.cli.context import CLIContext
from carefollow.web.app import create_app


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("web", help="Run the HTTP API server")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=5000)
    parser.set_defaults(handler=run)


def run(args: argparse.Namespace, ctx: CLIContext) -> int:
    import uvicorn

    app = create_app(ctx.paths, settings=ctx.settings)
    uvicorn.run(app, host=args.host, port=args.port)
    return 0

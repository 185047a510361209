"""Command line entry point: run the API, claim once, or print wallet status."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from typing import List, Optional

from .chain import ChainGateway
from .claimer import FaucetClaimer
from .config import FaucetConfig, load_config
from .store import LedgerStore

LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"


def cmd_serve(cfg: FaucetConfig, args: argparse.Namespace) -> int:
    import uvicorn

    from .server import build_app

    uvicorn.run(build_app(cfg), host=args.host or cfg.host, port=args.port or cfg.port)
    return 0


def cmd_claim(cfg: FaucetConfig, args: argparse.Namespace) -> int:
    store = LedgerStore(cfg.data_dir)
    store.initialize()
    claim = asyncio.run(FaucetClaimer(cfg, store).run())
    print(json.dumps(claim.to_dict(), indent=2))
    return 0 if claim.success else 1


def cmd_status(cfg: FaucetConfig, args: argparse.Namespace) -> int:
    status = asyncio.run(ChainGateway(cfg).describe())
    print(json.dumps(status, indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="faucet-bot", description="Sepolia faucet bot")
    sub = parser.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="Run the distribution API and claim scheduler")
    serve.add_argument("--host", help="Override HOST")
    serve.add_argument("--port", type=int, help="Override PORT")
    serve.set_defaults(func=cmd_serve)

    claim = sub.add_parser("claim", help="Claim from the faucet once and print the result")
    claim.set_defaults(func=cmd_claim)

    status = sub.add_parser("status", help="Print master wallet status")
    status.set_defaults(func=cmd_status)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        args = parser.parse_args(["serve", *(argv or [])])
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper(), format=LOG_FORMAT)
    try:
        cfg = load_config()
    except RuntimeError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2
    return args.func(cfg, args)


if __name__ == "__main__":
    sys.exit(main())

"""Serve the API: ``python -m monthly_ledger [--host H] [--port P] [--reload]``."""
import argparse

import uvicorn

from . import config


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="monthly-ledger", description="Run the monthly ledger API server.")
    p.add_argument("--host", default=config.HOST)
    p.add_argument("--port", type=int, default=config.PORT)
    p.add_argument("--reload", action="store_true", help="restart on code changes (development)")
    return p


def main(argv=None) -> None:
    args = build_parser().parse_args(argv)
    uvicorn.run(
        "monthly_ledger.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=config.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()

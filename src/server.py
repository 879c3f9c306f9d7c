"""Process runner for the ordering service.

- api:    serves the FastAPI app with uvicorn
- engine: runs the Protean Engine that processes events asynchronously
          (notification dispatch in production)

Usage:
    python src/server.py                  # Run the API server
    python src/server.py engine           # Run the event engine
    python src/server.py api --port 9000
"""

import argparse
import asyncio

import uvicorn
from protean.server.engine import Engine


def _get_domain():
    """Import and initialize the ordering domain."""
    from ordering.domain import ordering

    ordering.init()
    return ordering


async def run_engine():
    engine = Engine(_get_domain())
    await engine.run()


def main():
    parser = argparse.ArgumentParser(description="Marketplace ordering runner")
    parser.add_argument("mode", nargs="?", choices=["api", "engine"], default="api")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--reload", action="store_true")
    args = parser.parse_args()

    if args.mode == "engine":
        asyncio.run(run_engine())
    else:
        uvicorn.run("app:app", host=args.host, port=args.port, reload=args.reload)


if __name__ == "__main__":
    main()

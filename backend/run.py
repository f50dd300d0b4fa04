"""
Run the reminder service with uvicorn, or a single sweep.

Usage:
    python run.py
    python run.py --reload        # Development mode with auto-reload
    python run.py --port 8080     # Custom port
    python run.py --sweep-once    # Run one reminder sweep and exit
"""
import argparse
import asyncio
import json
import uvicorn


def sweep_once() -> None:
    from reminders.engine.factory import build_engine
    from reminders.repositories.mongo_client import create_indexes, close_connection
    from reminders.utils.logger import setup_logging

    setup_logging()
    create_indexes()
    try:
        result = asyncio.run(build_engine().run_sweep())
        print(json.dumps(result.model_dump(mode="json"), indent=2))
    finally:
        close_connection()


def main():
    parser = argparse.ArgumentParser(description="Run the reminder & escalation service")
    parser.add_argument(
        "--host",
        type=str,
        default="127.0.0.1",
        help="Host to bind to (default: 127.0.0.1)"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to bind to (default: 8000)"
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable auto-reload for development"
    )
    parser.add_argument(
        "--sweep-once",
        action="store_true",
        help="Run a single reminder sweep and print its summary"
    )

    args = parser.parse_args()

    if args.sweep_once:
        sweep_once()
        return

    print(f"Starting reminder service...")
    print(f"  Host: {args.host}")
    print(f"  Port: {args.port}")
    print(f"  Reload: {args.reload}")
    print()

    # One worker: the sweep scheduler lives in the server process
    uvicorn.run(
        "reminders.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload
    )


if __name__ == "__main__":
    main()

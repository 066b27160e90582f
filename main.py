"""TaleTree launcher. Serves the HTTP API or plays in the terminal."""

import argparse
import asyncio
import logging
import os
from pathlib import Path

from taletree.config import load_settings


def main():
    parser = argparse.ArgumentParser(description="TaleTree launcher")
    parser.add_argument("command", nargs="?", choices=["serve", "play"], default="serve",
                        help="serve the API (default) or play in this terminal")
    parser.add_argument("--data-dir", type=Path, default=None,
                        help="Save file directory (default: ./data)")
    parser.add_argument("--reload", action="store_true",
                        help="Restart the server on code changes")
    args = parser.parse_args()

    settings = load_settings()
    if args.data_dir:
        settings = settings.model_copy(update={"data_dir": args.data_dir.resolve()})
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "play":
        from taletree.app import build_controller
        from taletree.cli import play

        # keep log lines out of the story text
        logging.getLogger().setLevel(max(logging.WARNING, logging.getLogger().level))

        try:
            asyncio.run(play(build_controller(settings)))
        except KeyboardInterrupt:
            print("\nGoodbye.")
        return

    import uvicorn

    print(f"Starting TaleTree API on http://localhost:{settings.port} ...")
    if args.data_dir:
        os.environ["DATA_DIR"] = str(settings.data_dir)
    uvicorn.run("taletree.app:app", host=settings.host, port=settings.port, reload=args.reload)


if __name__ == "__main__":
    main()

"""
Run Ticket Dispatcher: HTTP API + dashboard, with the print queue scheduler
draining to the configured network printer.

    python app.py --host 0.0.0.0 --port 4040
"""

from __future__ import annotations

import argparse
import os

from ticket_dispatcher import EXTENSION_KEY, create_app


def main() -> None:
    parser = argparse.ArgumentParser(description="Ticket Dispatcher print server")
    parser.add_argument("--host", default=os.environ.get("TICKETDISPATCH_HOST", "0.0.0.0"))
    parser.add_argument("--port", type=int, default=int(os.environ.get("TICKETDISPATCH_PORT", "4040")))
    parser.add_argument("--data-path", default=None, help="queue directories and templates.json")
    parser.add_argument("--config-path", default=None, help="printer config.json")
    args = parser.parse_args()

    overrides = {}
    if args.data_path:
        overrides["DATA_PATH"] = args.data_path
    if args.config_path:
        overrides["CONFIG_PATH"] = args.config_path

    app = create_app(config_overrides=overrides or None)
    app.logger.info("Starting Ticket Dispatcher on http://%s:%d", args.host, args.port)
    app.logger.info("Press Ctrl+C to stop the server")
    try:
        # threaded: SSE clients hold a request thread each
        app.run(host=args.host, port=args.port, debug=False, threaded=True)
    finally:
        app.extensions[EXTENSION_KEY]["queue"].stop()


if __name__ == "__main__":
    main()

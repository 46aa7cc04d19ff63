"""Audio Sync — entry point."""
import sys

import uvicorn

from audiosync.config import HOST, LOG_LEVEL, PORT
from audiosync.ui import print_header, print_startup, setup_logging
from audiosync.web.server import create_app


def main():
    setup_logging(LOG_LEVEL)
    print_header()
    print_startup(HOST, PORT)
    app = create_app()
    # Handlers are already installed; keep uvicorn from replacing them
    uvicorn.run(app, host=HOST, port=PORT, log_config=None, log_level=LOG_LEVEL.lower())


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        sys.exit(0)

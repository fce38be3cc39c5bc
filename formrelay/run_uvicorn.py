import os

import uvicorn

from formrelay.logging_config import configure_logging


def main() -> None:
    """
    Uvicorn launcher.
    - Reads HOST/PORT from env, defaults to 0.0.0.0:5000.
    - Logging configured before Uvicorn starts.
    - Single worker: the rate limiter and SMTP pools live in process memory.
    """

    # Must run before uvicorn.run() so workers inherit logging.
    configure_logging()

    port = int(os.environ.get("PORT", 5000))

    uvicorn.run(
        "formrelay.main:create_app",
        factory=True,
        host=os.environ.get("HOST", "0.0.0.0"),
        port=port,
        reload=False,
        log_config=None,  # <-- Ensures our logging_config is used
        use_colors=False,
    )


if __name__ == "__main__":
    main()

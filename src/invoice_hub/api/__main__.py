"""
invoice_hub.api.__main__

`invoice-hub-api` / `python -m invoice_hub.api`: serve the invoice, payment and ticket API.

Host and port come from `INVH_API_HOST` / `INVH_API_PORT`. The reminder worker runs
separately (`arq invoice_hub.scheduling.worker.WorkerSettings`).
"""

from __future__ import annotations

import uvicorn

from invoice_hub.api.app import create_app
from invoice_hub.settings import get_settings


def main() -> None:
    app = create_app(settings=get_settings())
    settings = app.state.settings
    # Logging is configured by create_app; uvicorn must not install its own handlers.
    uvicorn.run(app, host=settings.api_host, port=settings.api_port, log_config=None)


if __name__ == "__main__":
    main()

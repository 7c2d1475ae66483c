"""Development runner.
Usage: python run.py  (reads .env if present)
"""

from __future__ import annotations

import os

from dotenv import load_dotenv

from coupongen import create_app
from coupongen.logging_setup import configure_logging

load_dotenv()
configure_logging(os.getenv("LOG_LEVEL", "INFO"))

app = create_app()

if __name__ == "__main__":  # pragma: no cover
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "5000"))
    app.run(debug=True, host=host, port=port)

from __future__ import annotations

import logging
import os

import uvicorn


def main() -> None:
    logging.basicConfig(
        level=os.getenv("DAYBRIDGE_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    host = os.getenv("DAYBRIDGE_HOST", "127.0.0.1")
    port = int(os.getenv("DAYBRIDGE_PORT", "8080"))
    uvicorn.run("daybridge.web_admin:create_app", factory=True, host=host, port=port, reload=False)


if __name__ == "__main__":
    main()

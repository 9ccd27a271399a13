#!/usr/bin/env python3
"""
Start the API server with settings from the gateway configuration.
"""

import uvicorn

from bge_ai.utils.config import Config


def main() -> None:
    config = Config.load_default()
    has_remote = bool(config.openai.api_key or config.anthropic.api_key)

    print("=" * 60)
    if not has_remote:
        print("WARNING: no OPENAI_API_KEY or ANTHROPIC_API_KEY configured.")
        print("Every request will be answered by the local responder.")
        print("=" * 60)
    print(f"Starting API server on http://{config.api.host}:{config.api.port}")
    print(f"API documentation available at http://localhost:{config.api.port}/docs")
    print("\nPress Ctrl+C to stop the server")
    print("=" * 60 + "\n")

    uvicorn.run(
        "bge_ai.api.app:app",
        host=config.api.host,
        port=config.api.port,
        reload=False,
        log_level="warning",
    )


if __name__ == "__main__":
    main()

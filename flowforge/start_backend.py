#!/usr/bin/env python3
"""
Backend startup wrapper.

    python -m flowforge.start_backend

Host and port come from HOST / PORT (defaults 0.0.0.0:8000).
"""
import os
import sys

if __name__ == "__main__":
    try:
        import uvicorn

        uvicorn.run(
            "flowforge.main:app",
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "8000")),
            reload=False,
            log_level="info",
            access_log=True,
        )
    except KeyboardInterrupt:
        print("\n[Backend] Shutting down...")
        sys.exit(0)

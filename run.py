"""Launch the QueryNox API (FastAPI under uvicorn)."""
import os

import uvicorn

from querynox.config import get_settings


def main():
    settings = get_settings()

    # DOCKER=1 binds on all interfaces and disables reload
    is_docker = os.environ.get("DOCKER", "0") == "1"
    host = "0.0.0.0" if is_docker else "127.0.0.1"
    port = int(os.environ.get("PORT", settings.backend_port))

    print("=" * 60)
    print("  QueryNox -- run.py starting")
    print(f"  API -> http://{host}:{port}")
    print("=" * 60)

    uvicorn.run(
        "querynox.main:app",
        host=host,
        port=port,
        reload=not is_docker,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()

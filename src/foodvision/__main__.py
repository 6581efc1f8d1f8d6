"""Run the gateway with uvicorn on the configured host and port."""
import uvicorn

from .config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run("foodvision.main:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()

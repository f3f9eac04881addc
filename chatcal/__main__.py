import uvicorn

from chatcal.config import settings

if __name__ == "__main__":  # pragma: no cover - manual entrypoint
    uvicorn.run("chatcal.main:app", host="0.0.0.0", port=settings.port)

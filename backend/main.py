"""Backend entrypoint."""

from shared import config


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("backend.api:app", host="0.0.0.0", port=config.port())

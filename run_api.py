import uvicorn

from config import API_HOST, API_PORT, LOG_LEVEL


if __name__ == "__main__":
    uvicorn.run("greenpartner.api:app", host=API_HOST, port=API_PORT, log_level=LOG_LEVEL.lower())

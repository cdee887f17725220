import uvicorn

from imgapi.config import settings
from imgapi.main import app

if __name__ == "__main__":
    uvicorn.run(app, host=settings.listen_host, port=settings.listen_port, log_config=None)

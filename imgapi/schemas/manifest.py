from pydantic import BaseModel, ConfigDict


class ManifestCreate(BaseModel):
    """Caller-supplied part of a new manifest.

    Protected fields (``v``, ``uuid``, ``state``, ``disabled``, ``public``,
    ``files``, ``published_at``) are not accepted from the caller; if present
    in the body they are ignored and the pool assigns them.
    """

    model_config = ConfigDict(extra="ignore")

    owner: str = ""
    name: str = ""
    version: str = ""
    type: str = ""
    os: str = ""
    nic_driver: str = ""
    disk_driver: str = ""
    cpu_type: str = ""
    image_size: int = 0
    description: str = ""


class Pong(BaseModel):
    ping: str = "pong"
    version: str = "1.0.0"
    imgapi: bool = True

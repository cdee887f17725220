import enum

from pydantic import BaseModel, Field

MANIFEST_VERSION = 2

# Compression type -> extension of the stored blob file
FILE_EXTENSIONS: dict[str, str] = {
    "bzip2": "bz2",
    "gzip": "gz",
    "none": "raw",
}


class ManifestState(str, enum.Enum):
    UNACTIVATED = "unactivated"
    ACTIVE = "active"
    DISABLED = "disabled"


class ImageFile(BaseModel):
    sha1: str
    size: int
    compression: str


class Manifest(BaseModel):
    # Required
    v: int = MANIFEST_VERSION
    uuid: str
    owner: str = ""
    name: str = ""
    version: str = ""
    state: ManifestState = ManifestState.UNACTIVATED
    disabled: bool = True
    public: bool = True
    published_at: str = ""
    type: str = ""
    os: str = ""
    files: list[ImageFile] = Field(default_factory=list)

    # Required if type == zvol
    nic_driver: str = ""
    disk_driver: str = ""
    cpu_type: str = ""
    image_size: int = 0

    # Optional
    description: str = ""

from imgapi.models.manifest import (
    FILE_EXTENSIONS,
    MANIFEST_VERSION,
    ImageFile,
    Manifest,
    ManifestState,
)

__all__ = ["Manifest", "ManifestState", "ImageFile", "FILE_EXTENSIONS", "MANIFEST_VERSION"]

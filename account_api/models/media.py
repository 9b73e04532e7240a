"""Profile media types: the upload request shape and upload results."""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional


@dataclass(frozen=True)
class ProfileMedia:
    """Locally staged image files for a profile.

    Each field is independently optional; workflows check presence per field.
    """

    avatar: Optional[Path] = None
    cover_image: Optional[Path] = None


@dataclass(frozen=True)
class UploadedAsset:
    """Result of a media host upload.

    Attributes:
        url: Public URL of the stored asset
        public_id: Opaque handle used to delete the asset
        resource_type: Media host resource type (image, video, raw)
    """

    url: str
    public_id: str
    resource_type: str = "image"

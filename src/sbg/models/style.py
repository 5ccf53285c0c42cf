"""Visual style settings applied to every generation call."""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class ColorMode(str, Enum):
    """Color palette mode."""
    COLOR = "Color"
    BLACK_AND_WHITE = "B&W"


class ImageSize(str, Enum):
    """Output resolution tier."""
    SIZE_1K = "1K"
    SIZE_2K = "2K"
    SIZE_4K = "4K"


class AspectRatio(str, Enum):
    """Frame aspect ratio."""
    SQUARE = "1:1"
    CINEMATIC = "16:9"
    PORTRAIT = "9:16"
    STANDARD = "4:3"
    WIDE = "2:1"

    @property
    def api_value(self) -> str:
        """Ratio sent to the image service, which has no 2:1 option."""
        return "16:9" if self is AspectRatio.WIDE else self.value

    @property
    def video_value(self) -> str:
        """Veo supports only landscape and portrait."""
        return "9:16" if self is AspectRatio.PORTRAIT else "16:9"


class StyleSettings(BaseModel):
    """Style parameters shared by a batch and its follow-up edits."""

    art_style: str = Field(default="Pencil Sketch", description="Named art style")
    color_mode: ColorMode = Field(default=ColorMode.COLOR, description="Color palette mode")
    image_size: ImageSize = Field(default=ImageSize.SIZE_1K, description="Resolution tier")
    aspect_ratio: AspectRatio = Field(default=AspectRatio.CINEMATIC, description="Aspect ratio")
    master_style: Optional[str] = Field(
        None, description="Style description overriding the named style definition"
    )
    style_reference_url: Optional[str] = Field(
        None, description="Image whose style every render should copy"
    )

    class Config:
        """Pydantic config."""
        frozen = False

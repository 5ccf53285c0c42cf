"""Google Imagen API client wrapper via Vertex AI."""

import base64
import logging
from typing import Any, Optional

from ..config import config
from ..errors import ModelRefusalError, TerminalGenerationError
from ..models.style import ImageSize
from .vertex import VertexClient

logger = logging.getLogger(__name__)

UPSCALE_FACTORS = {
    ImageSize.SIZE_1K: "x2",
    ImageSize.SIZE_2K: "x2",
    ImageSize.SIZE_4K: "x4",
}


def _inline_image(data: bytes) -> dict[str, str]:
    return {"bytesBase64Encoded": base64.b64encode(data).decode("ascii")}


class ImagenClient:
    """Client wrapper for Google Imagen generation, editing and upscaling."""

    def __init__(
        self,
        vertex: Optional[VertexClient] = None,
        model: Optional[str] = None,
        edit_model: Optional[str] = None,
        upscale_model: Optional[str] = None,
    ) -> None:
        """Initialize the Imagen client.

        Args:
            vertex: Authenticated Vertex client. Created if not provided.
            model: Imagen model for text-to-image generation.
            edit_model: Imagen capability model for reference-guided edits.
            upscale_model: Imagen model for upscaling.
        """
        self._vertex = vertex or VertexClient()
        self._model = model or config.imagen_model
        self._edit_model = edit_model or config.imagen_edit_model
        self._upscale_model = upscale_model or config.imagen_upscale_model

    @property
    def model(self) -> str:
        return self._model

    def generate_image(
        self,
        prompt: str,
        aspect_ratio: str = "16:9",
        image_size: ImageSize = ImageSize.SIZE_1K,
        reference_image: Optional[bytes] = None,
        style_reference_image: Optional[bytes] = None,
        negative_prompt: Optional[str] = None,
    ) -> bytes:
        """Generate an image from a text prompt.

        A composition sketch or style image switches the request to the
        capability model, which accepts reference images.

        Args:
            prompt: Full composed prompt.
            aspect_ratio: Image aspect ratio ('1:1', '16:9', '9:16', '4:3', '3:4').
            image_size: Output resolution tier.
            reference_image: Optional composition sketch (PNG bytes).
            style_reference_image: Optional style reference (PNG bytes).
            negative_prompt: Things to avoid in the image.

        Returns:
            PNG bytes of the first generated image.
        """
        parameters: dict[str, Any] = {
            "sampleCount": 1,
            "aspectRatio": aspect_ratio,
            "sampleImageSize": image_size.value,
        }
        if negative_prompt:
            parameters["negativePrompt"] = negative_prompt

        references: list[dict[str, Any]] = []
        if reference_image:
            references.append({
                "referenceType": "REFERENCE_TYPE_CONTROL",
                "referenceId": len(references) + 1,
                "referenceImage": _inline_image(reference_image),
                "controlImageConfig": {"controlType": "CONTROL_TYPE_SCRIBBLE"},
            })
            prompt = f"Use the composition of the sketch [{len(references)}] as a reference. {prompt}"
        if style_reference_image:
            references.append({
                "referenceType": "REFERENCE_TYPE_STYLE",
                "referenceId": len(references) + 1,
                "referenceImage": _inline_image(style_reference_image),
                "styleImageConfig": {"styleDescription": "the attached style reference"},
            })
            prompt = (
                f"Copy the artistic style, color palette and rendering technique of "
                f"image [{len(references)}] exactly. {prompt}"
            )

        instance: dict[str, Any] = {"prompt": prompt}
        model = self._model
        if references:
            instance["referenceImages"] = references
            model = self._edit_model

        logger.info(f"Generating image with {model}: {prompt[-60:]!r}")
        data = self._vertex.post(model, "predict", {
            "instances": [instance],
            "parameters": parameters,
        })
        return self._extract_image(data, "generation")

    def edit_image(self, source: bytes, prompt: str, aspect_ratio: str = "16:9") -> bytes:
        """Edit an existing image according to an instruction.

        Args:
            source: PNG bytes of the image to edit.
            prompt: Edit instruction.
            aspect_ratio: Aspect ratio of the output.

        Returns:
            PNG bytes of the edited image.
        """
        logger.info(f"Refining image with {self._edit_model}")
        data = self._vertex.post(self._edit_model, "predict", {
            "instances": [{
                "prompt": prompt,
                "referenceImages": [{
                    "referenceType": "REFERENCE_TYPE_RAW",
                    "referenceId": 1,
                    "referenceImage": _inline_image(source),
                }],
            }],
            "parameters": {
                "sampleCount": 1,
                "editMode": "EDIT_MODE_DEFAULT",
                "aspectRatio": aspect_ratio,
            },
        })
        return self._extract_image(data, "refinement")

    def upscale_image(
        self,
        source: bytes,
        image_size: ImageSize = ImageSize.SIZE_4K,
        prompt: str = "",
    ) -> bytes:
        """Upscale an image to a higher resolution tier.

        Raises:
            ModelRefusalError: If the service answered without an image.
        """
        factor = UPSCALE_FACTORS[image_size]
        logger.info(f"Upscaling image ({factor}) with {self._upscale_model}")
        data = self._vertex.post(self._upscale_model, "predict", {
            "instances": [{"prompt": prompt, "image": _inline_image(source)}],
            "parameters": {
                "sampleCount": 1,
                "mode": "upscale",
                "upscaleConfig": {"upscaleFactor": factor},
            },
        })
        return self._extract_image(data, "upscale")

    def _extract_image(self, data: dict[str, Any], operation: str) -> bytes:
        """Pull the first image out of a predict response.

        A prediction carrying only a text reason (safety filter, model refusal)
        raises ModelRefusalError; an empty response raises
        TerminalGenerationError.
        """
        logger.debug(f"Imagen {operation} response keys: {sorted(data)}")
        predictions = data.get("predictions", [])

        for prediction in predictions:
            image_data = prediction.get("bytesBase64Encoded")
            if image_data:
                return base64.b64decode(image_data)

        reasons = [
            p.get("raiFilteredReason") or p.get("text")
            for p in predictions
            if p.get("raiFilteredReason") or p.get("text")
        ]
        if reasons:
            text = str(reasons[0])
            logger.warning(f"Imagen {operation} refusal: {text}")
            raise ModelRefusalError(
                f"{operation.capitalize()} failed: model returned text instead of an image "
                f"({text[:50]}...)",
                response_text=text,
            )

        raise TerminalGenerationError(f"{operation.capitalize()} failed: no image returned")

from io import BytesIO
from pathlib import Path
import logging

import torch
import torchvision.transforms as transforms
from PIL import Image

from utilities.Logger import Logger

logger = Logger.setup_logger(log_file="starrycam.log", log_level=logging.INFO)

# Clockwise display rotation -> PIL transpose that performs it
_CLOCKWISE_TRANSPOSE = {
    90: Image.Transpose.ROTATE_270,
    180: Image.Transpose.ROTATE_180,
    270: Image.Transpose.ROTATE_90,
}


class ImageBridge:
    """
    Converts between captured stills, model input tensors and displayable images.

    The style model works in the camera sensor's frame, which is rotated 90 degrees
    from the natural display orientation, so rendered outputs are turned clockwise
    by ``output_rotation`` degrees before display.
    """

    def __init__(self, image_size=512, output_rotation=90):
        self.image_size = image_size
        self.output_rotation = output_rotation % 360
        if self.output_rotation not in (0, 90, 180, 270):
            raise ValueError("output_rotation must be a multiple of 90 degrees")

        steps = []
        if image_size:
            steps += [transforms.Resize(image_size), transforms.CenterCrop(image_size)]
        steps.append(transforms.ToTensor())
        self._input_transform = transforms.Compose(steps)
        self._to_pil = transforms.ToPILImage()

    def decode_to_model_input(self, still):
        """
        Decode a captured still into a model input batch.

        :param still: CapturedImage, encoded bytes, file path or PIL image.
        :return: Float tensor of shape (1, 3, H, W) in [0, 1], or None if decoding fails.
        """
        try:
            image = self._open(still)
            return self._input_transform(image).unsqueeze(0)
        except Exception as e:
            logger.error(f"Failed to decode still image: {e}")
            return None

    def encode_model_output(self, buffer):
        """
        Render a model output buffer into an upright display image.

        :param buffer: Tensor shaped (C, H, W) or (1, C, H, W) with C in (1, 3), values in [0, 1].
        :return: PIL image, or None if rendering fails.
        """
        try:
            tensor = self._as_image_tensor(buffer)
            image = self._to_pil(tensor.clamp(0, 1))
            if self.output_rotation:
                image = image.transpose(_CLOCKWISE_TRANSPOSE[self.output_rotation])
            return image
        except Exception as e:
            logger.error(f"Failed to render model output: {e}")
            return None

    @staticmethod
    def is_image_tensor(buffer) -> bool:
        if not isinstance(buffer, torch.Tensor):
            return False
        if buffer.dim() == 4:
            if buffer.size(0) != 1:
                return False
            buffer = buffer[0]
        return buffer.dim() == 3 and buffer.size(0) in (1, 3) and buffer.numel() > 0

    def _as_image_tensor(self, buffer):
        if not self.is_image_tensor(buffer):
            shape = tuple(buffer.shape) if isinstance(buffer, torch.Tensor) else type(buffer).__name__
            raise ValueError(f"Unexpected model output shape: {shape}")
        if buffer.dim() == 4:
            buffer = buffer[0]
        return buffer.detach().to("cpu", torch.float32)

    @staticmethod
    def _open(still):
        data = getattr(still, "data", still)
        if isinstance(data, Image.Image):
            return data.convert("RGB")
        if isinstance(data, (bytes, bytearray)):
            if not data:
                raise ValueError("Empty image data")
            image = Image.open(BytesIO(data))
        elif isinstance(data, (str, Path)):
            image = Image.open(data)
        else:
            raise ValueError(f"Invalid input type for image: {type(data).__name__}")
        # Pixels stay in sensor order, EXIF orientation is not applied
        return image.convert("RGB")

    @staticmethod
    def save_image(image, output_path, quality=95):
        """
        Save a displayable image, creating the parent directory when needed.
        :param image: PIL image.
        :param output_path: Destination file; the suffix picks the format.
        :param quality: JPEG quality.
        """
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        if output_path.suffix.lower() in (".jpg", ".jpeg"):
            image.convert("RGB").save(output_path, "JPEG", quality=quality)
        else:
            image.save(output_path)
        logger.info(f"Saved image: {output_path}")
        return output_path

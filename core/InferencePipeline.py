import asyncio
import logging
import time
from concurrent.futures import ThreadPoolExecutor

from core.Errors import (
    DecodeError,
    EncodeError,
    Failed,
    InferenceFailedError,
    ModelUnavailableError,
    NoResultError,
    Stylized,
)
from core.ImageBridge import ImageBridge
from core.StyleTransferModel import StyleTransferModel
from utilities.Logger import Logger

logger = Logger.setup_logger(log_file="starrycam.log", log_level=logging.INFO)


class InferencePipeline:
    """
    Runs the Starry Night model over one image per ``predict`` call.

    The model and the input transform are built once and reused for every
    request. Inference runs on a background executor; ``predict`` is awaited on
    the caller's event loop, so results always come back on that loop. Errors
    are returned as ``Failed`` values and never raised.
    """

    def __init__(self, model: StyleTransferModel, bridge: ImageBridge = None, max_workers: int = 1):
        self.model = model
        self.bridge = bridge or ImageBridge()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="inference")

    @classmethod
    def from_config(cls, config, model=None):
        if model is None:
            model = StyleTransferModel.from_config(config)
        bridge = ImageBridge(image_size=config.image_size, output_rotation=config.output_rotation)
        return cls(model, bridge=bridge, max_workers=config.inference_workers)

    @property
    def ready(self) -> bool:
        return self.model is not None and self.model.loaded

    async def predict(self, image):
        """
        Stylize one captured image.

        :param image: CapturedImage, encoded bytes, path or PIL image.
        :return: ``Stylized`` with the upright display image, or ``Failed`` with the error.
        """
        if not self.ready:
            logger.error("Style model is not loaded, rejecting request")
            return Failed(ModelUnavailableError(getattr(self.model, "load_error", None) or "Style model is not loaded"))

        batch = self.bridge.decode_to_model_input(image)
        if batch is None:
            return Failed(DecodeError("Input image could not be decoded"))

        loop = asyncio.get_running_loop()
        start_time = time.time()
        try:
            outputs = await loop.run_in_executor(self._executor, self.model.run, batch)
        except Exception as e:
            logger.error(f"Error performing request: {e}")
            return Failed(InferenceFailedError(str(e)))

        if not outputs or not self.bridge.is_image_tensor(outputs[0]):
            logger.error("Error in request results: model returned no image")
            return Failed(NoResultError("Model returned no usable image"))

        stylized = self.bridge.encode_model_output(outputs[0])
        if stylized is None:
            return Failed(EncodeError("Model output could not be rendered"))

        return Stylized(image=stylized, inference_time=time.time() - start_time)

    def close(self):
        self._executor.shutdown(wait=False)

import argparse
import asyncio
import logging
import os
import sys

from core.CaptureDevice import CapturedImage
from core.ImageBridge import ImageBridge
from core.InferencePipeline import InferencePipeline
from core.SessionController import SessionController, SessionState
from utilities.ConfigManager import PHOTO_QUALITY_LEVELS, ConfigManager
from utilities.Logger import Logger

# Set up logger
logger = Logger.setup_logger(log_file="cli.log", log_level=logging.INFO)


def build_parser():
    parser = argparse.ArgumentParser(description="StarryCam: take a photo and paint it in the Starry Night style.")
    source = parser.add_mutually_exclusive_group()
    source.add_argument("--image", help="Stylize an existing photo instead of using the camera")
    source.add_argument("--camera", type=int, help="Camera index to take the photo with")
    parser.add_argument("--output", required=True, help="Path to save the stylized image")
    parser.add_argument("--config", help="Path to a JSON config file")
    parser.add_argument("--model", help="Path to the pretrained style model")
    parser.add_argument("--quality", choices=sorted(PHOTO_QUALITY_LEVELS), help="Photo quality priority")
    return parser


def load_config(args):
    config = ConfigManager.load_app_config(args.config)
    if args.camera is not None:
        config.camera_index = args.camera
    if args.model:
        config.model_path = args.model
    if args.quality:
        config.photo_quality = args.quality
    Logger.set_level_all(config.level)
    return config


async def run_session(controller, captured=None):
    """Take (or submit) one photo and wait for the stylized result."""
    if not controller.open():
        return None
    if captured is not None:
        return await controller.submit(captured)
    return await controller.take_photo()


def main(argv=None):
    args = build_parser().parse_args(argv)

    logger.info("[1/4] Validating input arguments...")
    if args.image:
        if not os.path.exists(args.image):
            logger.error(f"Content image '{args.image}' does not exist.")
            return 1
        if not args.image.lower().endswith(('.jpg', '.jpeg', '.png')):
            logger.error(f"Content image '{args.image}' must be a .jpg or .png file.")
            return 1

    try:
        config = load_config(args)
    except (ValueError, FileNotFoundError) as e:
        logger.error(f"Error loading config: {e}")
        return 1

    logger.info("[2/4] Loading style model...")
    pipeline = InferencePipeline.from_config(config)
    controller = SessionController.from_config(config, pipeline=pipeline, use_device_camera=not args.image)

    try:
        captured = None
        if args.image:
            logger.info("[3/4] Reading photo...")
            try:
                captured = CapturedImage.from_file(args.image, quality=config.photo_quality)
            except (OSError, ValueError) as e:
                logger.error(f"Error reading photo: {e}")
                return 1
        else:
            logger.info(f"[3/4] Taking photo with camera {config.camera_index}...")

        logger.info("[4/4] Applying Starry Night style... This may take a few moments.")
        asyncio.run(run_session(controller, captured))

        display = controller.snapshot()
        if display.state != SessionState.DISPLAYING or display.transformed is None:
            logger.error(f"Error [{display.error_kind or 'no_image'}]: {display.message}")
            return 1

        ImageBridge.save_image(display.transformed, args.output)
        logger.info(f"Styled image saved to: {args.output}")
        return 0
    finally:
        controller.close()
        pipeline.close()


if __name__ == "__main__":
    sys.exit(main())

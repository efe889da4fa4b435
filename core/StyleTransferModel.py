import logging
import os
import time
from pathlib import Path

import torch
import torch.nn as nn
from huggingface_hub import hf_hub_download

from utilities.Logger import Logger

# Set up the logger
logger = Logger.setup_logger(log_file="starrycam.log", log_level=logging.INFO)


def resolve_device(name="auto"):
    """Pick the torch device for inference"""
    if name != "auto":
        return torch.device(name)
    if torch.cuda.is_available():
        return torch.device("cuda")
    if hasattr(torch.backends, "mps") and torch.backends.mps.is_available():
        return torch.device("mps")
    return torch.device("cpu")


class StyleTransferModel:
    """
    Pretrained Starry Night style-transfer network, loaded once and shared read-only.

    The artifact is opaque: either a TorchScript archive or a pickled ``nn.Module``.
    A failed load is permanent for the instance; ``model`` stays ``None`` and
    ``load_error`` describes why.
    """

    def __init__(self, model_path=None, module=None, device="auto",
                 hf_repo_id=None, hf_filename=None, hf_token=None):
        self.device = resolve_device(device)
        self.model_path = Path(model_path) if model_path else None
        self.model = None
        self.load_error = None

        try:
            if module is not None:
                self.model = self._prepare(module)
            else:
                path = self._locate_artifact(hf_repo_id, hf_filename, hf_token)
                self.model = self._prepare(self._load_artifact(path))
            logger.info(f"Style model ready on {self.device}")
        except Exception as e:
            self.load_error = str(e)
            logger.error(f"Failed to load style model: {e}")

    @classmethod
    def from_config(cls, config):
        return cls(
            model_path=config.model_path,
            device=config.device,
            hf_repo_id=config.hf_repo_id,
            hf_filename=config.hf_filename,
            hf_token=config.hf_token,
        )

    @property
    def loaded(self) -> bool:
        return self.model is not None

    def run(self, batch):
        """
        Run one blocking forward pass.

        :param batch: Input tensor of shape (1, 3, H, W).
        :return: List of model outputs, possibly empty.
        """
        if self.model is None:
            raise RuntimeError("Style model is not loaded")

        start_time = time.time()
        with torch.no_grad():
            output = self.model(batch.to(self.device))
        logger.info(f"Style transfer complete in {time.time() - start_time:.3f}s")

        if output is None:
            return []
        if isinstance(output, torch.Tensor):
            return [output]
        if isinstance(output, dict):
            return list(output.values())
        if isinstance(output, (list, tuple)):
            return list(output)
        return [output]

    def _locate_artifact(self, hf_repo_id, hf_filename, hf_token):
        if self.model_path is not None and self.model_path.exists():
            return self.model_path
        if hf_repo_id:
            filename = hf_filename or (self.model_path.name if self.model_path else None)
            if not filename:
                raise FileNotFoundError("No model file name configured for Hugging Face download")
            return self._download_artifact(hf_repo_id, filename, hf_token)
        raise FileNotFoundError(f"Model file '{self.model_path}' not found")

    def _download_artifact(self, repo_id, filename, token, cache_dir="models"):
        logger.info(f"Fetching '{filename}' from Hugging Face Hub repo '{repo_id}'...")
        try:
            path = hf_hub_download(repo_id=repo_id, filename=filename, cache_dir=cache_dir, token=token)
        except Exception as e:
            logger.error(f"Failed to download model '{repo_id}/{filename}': {e}")
            raise
        logger.info(f"Model downloaded to {path}.")
        return Path(path)

    def _load_artifact(self, path):
        logger.info(f"Loading style model from {path}")
        try:
            return torch.jit.load(os.fspath(path), map_location=self.device)
        except (RuntimeError, ValueError):
            # Not a TorchScript archive, try a pickled module
            artifact = torch.load(os.fspath(path), map_location=self.device, weights_only=False)
        if not isinstance(artifact, nn.Module):
            raise TypeError(f"Model artifact must be a torch module, got {type(artifact).__name__}")
        return artifact

    def _prepare(self, module):
        module = module.to(self.device)
        module.eval()
        return module

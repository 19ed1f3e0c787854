"""
Face Embedding Extractor

Turns a cropped face region into a Descriptor using a pre-trained face
recognition network. The network is an external capability: this module
only loads it, feeds it the crop and validates what comes back.

Supported backends (installed with the `models` extra):
  - insightface (preferred): buffalo_l bundle, ArcFace R100, 512-dim
  - facenet-pytorch (fallback): InceptionResnetV1 / VGGFace2, 512-dim

Usage:
    from facematch.face_embedder import FaceEmbedder

    embedder = FaceEmbedder.from_config(settings.embedding)
    descriptor = embedder.extract(face_crop_bgr)   # Descriptor or None
"""

import logging
import threading
from typing import Optional

import cv2
import numpy as np

from facematch.descriptor import Descriptor
from facematch.errors import DimensionMismatch
from facematch.interfaces import DescriptorExtractor

logger = logging.getLogger(__name__)

_INSIGHTFACE_AVAILABLE = False
_FACENET_AVAILABLE = False

try:
    from insightface.app import FaceAnalysis
    _INSIGHTFACE_AVAILABLE = True
except ImportError:
    pass

try:
    import torch
    from facenet_pytorch import InceptionResnetV1
    _FACENET_AVAILABLE = True
except ImportError:
    pass

ARCFACE_INPUT_SIZE = (112, 112)
FACENET_INPUT_SIZE = (160, 160)


def available_backends():
    """Names of the embedding backends importable in this environment."""
    installed = {"insightface": _INSIGHTFACE_AVAILABLE, "facenet": _FACENET_AVAILABLE}
    return [name for name, ok in installed.items() if ok]


class _InsightFaceBackend:
    """ArcFace from an insightface model bundle, run through FaceAnalysis."""

    def __init__(self, model_name: str, device: str):
        self.model_name = model_name
        self.device = device
        self.app = None

    def load(self) -> None:
        if not _INSIGHTFACE_AVAILABLE:
            raise ImportError("insightface not installed. Run: pip install insightface onnxruntime")

        use_gpu = self.device == "cuda"
        providers = ["CUDAExecutionProvider", "CPUExecutionProvider"] if use_gpu else ["CPUExecutionProvider"]
        self.app = FaceAnalysis(name=self.model_name, providers=providers)
        self.app.prepare(ctx_id=0 if use_gpu else -1, det_size=(640, 640))

    def embed(self, crop: np.ndarray) -> Optional[np.ndarray]:
        # The bundle re-detects inside the crop so ArcFace gets an aligned face.
        # A tight crop often has too little context for that, hence the padding.
        for candidate in (crop, _pad_image(crop, ratio=0.5)):
            faces = self.app.get(candidate)
            if faces:
                top = max(faces, key=lambda f: f.det_score)
                return np.asarray(top.normed_embedding, dtype=np.float32)

        logger.debug("No face re-detected in crop, embedding the unaligned crop")
        return self._embed_unaligned(crop)

    def _embed_unaligned(self, crop: np.ndarray) -> Optional[np.ndarray]:
        models = self.app.models
        candidates = models.values() if isinstance(models, dict) else models
        recognizer = next((m for m in candidates if getattr(m, "taskname", None) == "recognition"), None)
        if recognizer is None:
            logger.error(f"Model bundle {self.model_name} has no recognition model")
            return None

        resized = cv2.resize(crop, ARCFACE_INPUT_SIZE, interpolation=cv2.INTER_AREA)
        blob = cv2.dnn.blobFromImage(resized, 1.0 / 127.5, ARCFACE_INPUT_SIZE,
                                     (127.5, 127.5, 127.5), swapRB=True)
        session = recognizer.session
        out = session.run([session.get_outputs()[0].name], {session.get_inputs()[0].name: blob})
        return np.asarray(out[0], dtype=np.float32).ravel()


class _FaceNetBackend:
    """InceptionResnetV1 pretrained on VGGFace2."""

    def __init__(self, model_name: str, device: str):
        self.device = device
        self.net = None

    def load(self) -> None:
        if not _FACENET_AVAILABLE:
            raise ImportError("facenet-pytorch not installed. Run: pip install facenet-pytorch")

        target = self.device if self.device == "cpu" or torch.cuda.is_available() else "cpu"
        self.net = InceptionResnetV1(pretrained="vggface2").eval().to(torch.device(target))

    def embed(self, crop: np.ndarray) -> Optional[np.ndarray]:
        rgb = cv2.resize(cv2.cvtColor(crop, cv2.COLOR_BGR2RGB), FACENET_INPUT_SIZE,
                         interpolation=cv2.INTER_AREA)
        # (H, W, C) uint8 -> (1, C, H, W) float in [-1, 1]
        batch = torch.from_numpy(np.ascontiguousarray(rgb.transpose(2, 0, 1))).float()
        batch = ((batch - 127.5) / 128.0).unsqueeze(0)

        with torch.no_grad():
            out = self.net(batch.to(next(self.net.parameters()).device))
        return out.cpu().numpy().astype(np.float32).ravel()


_BACKENDS = {
    "insightface": _InsightFaceBackend,
    "facenet": _FaceNetBackend,
}


class FaceEmbedder(DescriptorExtractor):
    """
    Extract identity descriptors from face crops.

    The model is loaded lazily on first use. Every descriptor is
    L2-normalized, so Euclidean distances between two descriptors fall in
    [0, 2].

    Args:
        backend: "insightface", "facenet" or "auto".
        model: insightface model bundle name (ignored by facenet).
        device: "cuda" or "cpu".
        dimension: Expected descriptor length; a model producing another
                   length raises DimensionMismatch.
        min_face_size: Crops with a side shorter than this (px) are rejected
                       without running the model.

    Raises:
        ValueError: If the backend name is unknown.
        ImportError: If backend is "auto" and none is installed.
    """

    def __init__(
        self,
        backend: str = "auto",
        model: str = "buffalo_l",
        device: str = "cpu",
        dimension: int = 512,
        min_face_size: int = 20,
    ):
        if backend == "auto":
            installed = available_backends()
            if not installed:
                raise ImportError(
                    "No face embedding backend available. "
                    "Install one with: pip install 'facematch[models]'"
                )
            backend = installed[0]
        if backend not in _BACKENDS:
            raise ValueError(f"Unknown embedding backend: {backend}")

        self.backend = backend
        self.model_name = model
        self.device = device
        self.dimension = dimension
        self.min_face_size = min_face_size

        self._runner = _BACKENDS[backend](model, device)
        self.is_loaded = False
        self._load_lock = threading.Lock()

    @classmethod
    def from_config(cls, embedding_config) -> "FaceEmbedder":
        return cls(
            backend=embedding_config.backend,
            model=embedding_config.model,
            device=embedding_config.device,
            dimension=embedding_config.dimension,
            min_face_size=embedding_config.min_face_size,
        )

    def load_model(self) -> None:
        """Load the recognition network. Called automatically by extract()."""
        if self.is_loaded:
            return
        with self._load_lock:
            if self.is_loaded:
                return
            self._runner.load()
            self.is_loaded = True
        logger.info(f"FaceEmbedder ready: backend={self.backend}, model={self.model_name}, device={self.device}")

    def extract(self, region_image: np.ndarray) -> Optional[Descriptor]:
        """
        Compute the descriptor of a face crop.

        Args:
            region_image: Face crop in BGR (H, W, 3) or grayscale (H, W), uint8.

        Returns:
            Descriptor of length `dimension`, or None if the crop is empty,
            too small, or the model produced no usable output.

        Raises:
            DimensionMismatch: If the model output length differs from the
                               configured dimension (a configuration error).
        """
        if region_image is None or region_image.size == 0:
            logger.warning("Empty face region, no descriptor extracted")
            return None

        h, w = region_image.shape[:2]
        if min(h, w) < self.min_face_size:
            logger.warning(f"Face region {w}x{h} smaller than {self.min_face_size}px, skipped")
            return None

        if region_image.ndim == 2:
            region_image = cv2.cvtColor(region_image, cv2.COLOR_GRAY2BGR)

        self.load_model()
        raw = self._embed(region_image)
        if raw is None:
            return None

        vector = _l2_normalize(raw)
        if vector is None:
            logger.warning("Model returned a zero-norm embedding")
            return None
        if vector.shape[0] != self.dimension:
            raise DimensionMismatch(self.dimension, int(vector.shape[0]))

        return Descriptor(vector)

    def _embed(self, crop: np.ndarray) -> Optional[np.ndarray]:
        return self._runner.embed(crop)


def _l2_normalize(vec) -> Optional[np.ndarray]:
    vec = np.asarray(vec, dtype=np.float32).ravel()
    norm = float(np.linalg.norm(vec))
    if not np.isfinite(norm) or norm < 1e-8:
        return None
    return vec / norm


def _pad_image(image: np.ndarray, ratio: float = 0.2) -> np.ndarray:
    """Surround the image with a border of its mean color."""
    h, w = image.shape[:2]
    dy, dx = int(h * ratio), int(w * ratio)
    fill = [float(c) for c in image.mean(axis=(0, 1))]
    return cv2.copyMakeBorder(image, dy, dy, dx, dx, cv2.BORDER_CONSTANT, value=fill)

"""
Face Descriptor Extractor

Finds every face in an image and returns one fixed-length descriptor per
face. The attendance matcher compares these descriptors against the ones
stored at enrollment time by Euclidean distance.

Supports two backends:
  - face_recognition (preferred): dlib ResNet, 128-dim descriptors. This is
    the embedding space the default 0.6 distance threshold is tuned for.
  - insightface: buffalo_l bundle (SCRFD + ArcFace), 512-dim L2-normalized
    descriptors. Requires matching.descriptor_dim = 512 and a retuned
    threshold.

Usage:
    from core.descriptor_extractor import DescriptorExtractor

    extractor = DescriptorExtractor(config)
    extractor.load_model()

    image = extractor.load_image("storage/uploads/class.jpg")
    descriptors = extractor.extract_descriptors(image)   # (K, 128)
    enrolled = extractor.extract_single(portrait)        # (128,)
"""

import logging
from typing import Iterator, List, Optional, Tuple

import cv2
import numpy as np

from core.matching.interfaces import DescriptorExtractionFailed, NoFaceDetected

logger = logging.getLogger(__name__)

# Backend availability flags
_FACE_RECOGNITION_AVAILABLE = False
_INSIGHTFACE_AVAILABLE = False

try:
    import face_recognition
    _FACE_RECOGNITION_AVAILABLE = True
except ImportError:
    pass

try:
    from insightface.app import FaceAnalysis
    _INSIGHTFACE_AVAILABLE = True
except ImportError:
    pass


BACKEND_DIMS = {
    "face_recognition": 128,
    "insightface": 512,
}


class DescriptorExtractor:
    """
    Extract face descriptors from photos.

    Args:
        config: Dictionary with keys:
            - backend: "face_recognition", "insightface" or "auto" (default)
            - model: face_recognition detector, "hog" or "cnn" (default "hog")
            - insightface_model: insightface bundle name (default "buffalo_l")
            - num_jitters: Re-sampling passes per descriptor (default 1)
            - upsample_times: Detector upsampling for small faces (default 1)
            - device: "cuda" or "cpu" (insightface only)

    Raises:
        ValueError: If the backend name is unknown.
    """

    def __init__(self, config: Optional[dict] = None):
        if config is None:
            config = {}

        self.model_name = config.get("model", "hog")
        self.insightface_model = config.get("insightface_model", "buffalo_l")
        self.num_jitters = int(config.get("num_jitters", 1))
        self.upsample_times = int(config.get("upsample_times", 1))
        self.device = config.get("device", "cpu")

        requested_backend = config.get("backend", "auto")
        if requested_backend == "auto":
            if _INSIGHTFACE_AVAILABLE and not _FACE_RECOGNITION_AVAILABLE:
                self.backend = "insightface"
            else:
                self.backend = "face_recognition"
                if not _FACE_RECOGNITION_AVAILABLE:
                    # Attendance still works in fallback mode without a backend
                    logger.warning(
                        "No face descriptor backend available. "
                        "Install face_recognition: pip install face_recognition\n"
                        "Or insightface: pip install insightface onnxruntime"
                    )
        elif requested_backend in BACKEND_DIMS:
            self.backend = requested_backend
        else:
            raise ValueError(f"Unknown backend: {requested_backend}")

        self.descriptor_dim = BACKEND_DIMS[self.backend]
        self._model = None
        self.is_loaded = False

    @property
    def is_available(self) -> bool:
        """True if the selected backend is installed."""
        if self.backend == "insightface":
            return _INSIGHTFACE_AVAILABLE
        return _FACE_RECOGNITION_AVAILABLE

    # ------------------------------------------------------------------
    # Model loading
    # ------------------------------------------------------------------

    def load_model(self) -> None:
        """Load the backend model. Called lazily by the extract methods."""
        if self.is_loaded:
            return

        if self.backend == "insightface":
            self._load_insightface()
        elif not _FACE_RECOGNITION_AVAILABLE:
            # face_recognition loads its dlib models on import
            raise ImportError("face_recognition not installed. Run: pip install face_recognition")

        self.is_loaded = True
        logger.info(f"DescriptorExtractor loaded (backend={self.backend}, dim={self.descriptor_dim})")

    def _load_insightface(self) -> None:
        """Load insightface model bundle."""
        if not _INSIGHTFACE_AVAILABLE:
            raise ImportError("insightface not installed. Run: pip install insightface onnxruntime")

        if self.device == "cuda":
            providers = ["CUDAExecutionProvider", "CPUExecutionProvider"]
        else:
            providers = ["CPUExecutionProvider"]

        self._model = FaceAnalysis(name=self.insightface_model, providers=providers)
        self._model.prepare(ctx_id=0 if self.device == "cuda" else -1, det_size=(640, 640))

    # ------------------------------------------------------------------
    # Image loading
    # ------------------------------------------------------------------

    @staticmethod
    def load_image(path: str) -> np.ndarray:
        """
        Read an image from disk in BGR format.

        Raises:
            DescriptorExtractionFailed: If the file cannot be read as an image.
        """
        image = cv2.imread(str(path), cv2.IMREAD_COLOR)
        if image is None:
            raise DescriptorExtractionFailed(f"Could not read image: {path}")
        return image

    @staticmethod
    def decode_image(data: bytes) -> np.ndarray:
        """
        Decode encoded image bytes (JPEG, PNG, ...) to a BGR array.

        Raises:
            DescriptorExtractionFailed: If the bytes are not a decodable image.
        """
        np_arr = np.frombuffer(data, np.uint8)
        image = cv2.imdecode(np_arr, cv2.IMREAD_COLOR) if np_arr.size else None
        if image is None:
            raise DescriptorExtractionFailed("Could not decode image data")
        return image

    # ------------------------------------------------------------------
    # Extraction
    # ------------------------------------------------------------------

    def iter_descriptors(self, image: np.ndarray) -> Iterator[np.ndarray]:
        """
        Yield one descriptor per detected face, in detector order.

        Args:
            image: Photo in BGR format (H, W, 3), uint8.

        Yields:
            float32 descriptors of shape (descriptor_dim,).

        Raises:
            DescriptorExtractionFailed: If the backend fails.
        """
        for _, descriptor in self._detect(image):
            yield descriptor

    def extract_descriptors(self, image: np.ndarray) -> np.ndarray:
        """
        Extract descriptors for every face in a group photo.

        Returns:
            float32 array of shape (K, descriptor_dim); K may be 0.

        Raises:
            DescriptorExtractionFailed: If the backend fails or returns
                                        malformed descriptors.
        """
        descriptors = list(self.iter_descriptors(image))
        if not descriptors:
            return np.empty((0, self.descriptor_dim), dtype=np.float32)

        # Check each face before stacking; ragged output cannot be stacked
        for index, descriptor in enumerate(descriptors):
            shape = np.shape(descriptor)
            if shape != (self.descriptor_dim,):
                raise DescriptorExtractionFailed(
                    f"Backend returned malformed descriptor {index}: shape={shape}, "
                    f"expected ({self.descriptor_dim},)"
                )

        stacked = np.stack(descriptors).astype(np.float32)
        if not np.all(np.isfinite(stacked)):
            raise DescriptorExtractionFailed("Backend returned malformed descriptors: non-finite values")
        return stacked

    def extract_single(self, image: np.ndarray) -> np.ndarray:
        """
        Extract the descriptor of the most prominent face in a portrait.

        Used at enrollment. With several faces in the photo, the largest
        (face_recognition) or most confident (insightface) one is kept.

        Raises:
            NoFaceDetected: If the image contains no face.
            DescriptorExtractionFailed: If the backend fails.
        """
        detections = list(self._detect(image))
        if not detections:
            raise NoFaceDetected("No face detected in the image")

        if len(detections) > 1:
            logger.warning(f"{len(detections)} faces in enrollment photo, keeping the most prominent")

        _, descriptor = max(detections, key=lambda d: d[0])
        return descriptor

    def _detect(self, image: np.ndarray) -> List[Tuple[float, np.ndarray]]:
        """Run the backend; returns (prominence, descriptor) pairs."""
        if image is None or getattr(image, "ndim", 0) != 3:
            raise DescriptorExtractionFailed("Expected a BGR image of shape (H, W, 3)")

        try:
            if not self.is_loaded:
                self.load_model()

            if self.backend == "insightface":
                detections = self._detect_insightface(image)
            else:
                detections = self._detect_face_recognition(image)
        except (DescriptorExtractionFailed, NoFaceDetected):
            raise
        except Exception as e:
            logger.error(f"Descriptor extraction failed ({self.backend}): {e}")
            raise DescriptorExtractionFailed(str(e)) from e

        logger.debug(f"Detected {len(detections)} face(s)")
        return detections

    def _detect_face_recognition(self, image: np.ndarray) -> List[Tuple[float, np.ndarray]]:
        """Detect faces and compute 128-d descriptors with dlib."""
        # face_recognition expects RGB input
        rgb = cv2.cvtColor(image, cv2.COLOR_BGR2RGB)

        locations = face_recognition.face_locations(
            rgb,
            number_of_times_to_upsample=self.upsample_times,
            model=self.model_name,
        )
        if not locations:
            return []

        encodings = face_recognition.face_encodings(
            rgb,
            known_face_locations=locations,
            num_jitters=self.num_jitters,
        )

        detections = []
        for (top, right, bottom, left), encoding in zip(locations, encodings):
            area = float((bottom - top) * (right - left))
            detections.append((area, np.asarray(encoding, dtype=np.float32)))
        return detections

    def _detect_insightface(self, image: np.ndarray) -> List[Tuple[float, np.ndarray]]:
        """Detect faces and compute 512-d ArcFace descriptors."""
        # insightface expects BGR input (same as OpenCV)
        faces = self._model.get(image)
        return [
            (float(face.det_score), face.normed_embedding.astype(np.float32))
            for face in faces
        ]


# Singleton instance for the extractor
_extractor_instance: Optional[DescriptorExtractor] = None


def get_descriptor_extractor(config: Optional[dict] = None) -> DescriptorExtractor:
    """
    Get or create the shared DescriptorExtractor.

    Args:
        config: Extractor configuration. If None, uses the
                "face_embedding" section of config.yaml.
    """
    global _extractor_instance

    if _extractor_instance is None:
        if config is None:
            from core.config import get_face_embedding_config
            config = get_face_embedding_config()
        _extractor_instance = DescriptorExtractor(config)

    return _extractor_instance

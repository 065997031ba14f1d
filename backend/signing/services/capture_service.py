"""
Signature capture: normalizes freehand drawing, typed text and uploaded files into
one SignatureArtifact.

Sessions are in-memory and synchronous. Nothing is persisted here; the caller
attaches the committed artifact to a party.
"""
import base64
import io
import json
import logging
import math
from typing import BinaryIO, List, Optional, Sequence, Tuple, Union

from PIL import Image, ImageDraw

from signing import config
from signing.errors import (
    CaptureModeMismatch,
    CaptureReadError,
    EmptyCapture,
    FileTooLarge,
    InvalidFileType,
    InvalidStroke,
)
from signing.models.documents import CaptureMode, SignatureArtifact, SignatureStyle

logger = logging.getLogger(__name__)

Point = Tuple[int, int]


def _hex_to_rgba(hexstr: str) -> Tuple[int, int, int, int]:
    """Convert #RRGGBB or #RGB into an RGBA tuple for PIL."""
    s = (hexstr or "#000000").strip()
    if not s.startswith("#"):
        s = "#" + s
    try:
        if len(s) == 4:
            r, g, b = (int(c * 2, 16) for c in s[1:4])
        else:
            r, g, b = int(s[1:3], 16), int(s[3:5], 16), int(s[5:7], 16)
    except ValueError:
        r, g, b = 0, 0, 0
    return (r, g, b, 255)


def _data_url(content_type: str, data: bytes) -> str:
    return f"data:{content_type};base64,{base64.b64encode(data).decode('ascii')}"


def validate_signature_file(content_type: str, size: int) -> str:
    """Check MIME kind and declared size of a signature upload. Returns the normalized MIME."""
    kind = (content_type or "").strip().lower()
    if kind not in config.SIGNATURE_UPLOAD_TYPES:
        raise InvalidFileType("Please upload a valid image (PNG, JPEG) or PDF file")
    if size > config.SIGNATURE_UPLOAD_MAX_BYTES:
        raise FileTooLarge(f"File size should be less than {config.SIGNATURE_UPLOAD_MAX_BYTES // (1024 * 1024)}MB")
    return kind


class CaptureSession:
    """One capture attempt in a single mode.

    Switching modes discards uncommitted state of the previous mode.
    """

    def __init__(
        self,
        mode: CaptureMode,
        style: Optional[SignatureStyle] = None,
        canvas_size: Tuple[int, int] = (config.CANVAS_WIDTH, config.CANVAS_HEIGHT),
    ):
        self.style = style or SignatureStyle()
        self.canvas_size = canvas_size
        self._reset(mode)

    def _reset(self, mode: CaptureMode) -> None:
        self.mode = CaptureMode(mode)
        self._strokes: List[List[Point]] = []
        self._canvas = Image.new("RGBA", self.canvas_size, (0, 0, 0, 0))
        self._text = ""
        self._file_bytes: Optional[bytes] = None
        self._file_type: Optional[str] = None
        self._filename: Optional[str] = None

    # -------- Mode -----------------------------------------------------------
    def switch_mode(self, mode: CaptureMode) -> None:
        self._reset(mode)

    def _require(self, mode: CaptureMode) -> None:
        if self.mode != mode:
            raise CaptureModeMismatch(f"Capture session is in {self.mode.value} mode, not {mode.value}")

    # -------- Draw -----------------------------------------------------------
    def add_stroke(self, points: Sequence[Sequence[float]]) -> None:
        """Render one pointer-drag stroke onto the raster."""
        self._require(CaptureMode.DRAW)
        poly = []
        for p in points:
            if len(p) < 2 or not all(isinstance(v, (int, float)) and math.isfinite(v) for v in p[:2]):
                raise InvalidStroke(f"Invalid stroke point: {p!r}")
            poly.append((int(p[0]), int(p[1])))
        if not poly:
            return
        drw = ImageDraw.Draw(self._canvas)
        fill = _hex_to_rgba(self.style.color)
        if len(poly) == 1:
            x, y = poly[0]
            r = max(1, self.style.thickness // 2)
            drw.ellipse((x - r, y - r, x + r, y + r), fill=fill)
        else:
            drw.line(poly, fill=fill, width=self.style.thickness, joint="curve")
        self._strokes.append(poly)

    def clear(self) -> None:
        """Blank canvas of the same size; strokes are discarded, no undo."""
        self._require(CaptureMode.DRAW)
        self._strokes = []
        self._canvas = Image.new("RGBA", self.canvas_size, (0, 0, 0, 0))

    @property
    def stroke_count(self) -> int:
        return len(self._strokes)

    # -------- Type -----------------------------------------------------------
    def set_text(self, text: str, style: Optional[SignatureStyle] = None) -> None:
        self._require(CaptureMode.TYPE)
        self._text = text or ""
        if style is not None:
            self.style = style

    # -------- Upload ---------------------------------------------------------
    def attach_file(
        self,
        data: Union[bytes, BinaryIO],
        content_type: str,
        size: Optional[int] = None,
        filename: Optional[str] = None,
    ) -> None:
        """Validate and read a signature file fully into memory."""
        self._require(CaptureMode.UPLOAD)
        declared = size if size is not None else (len(data) if isinstance(data, (bytes, bytearray)) else 0)
        kind = validate_signature_file(content_type, declared)

        if isinstance(data, (bytes, bytearray)):
            content = bytes(data)
        else:
            try:
                content = data.read()
            except OSError as e:
                logger.warning(f"Signature upload read failed filename={filename}: {e}")
                raise CaptureReadError(f"Failed to read signature file: {e}")
            if isinstance(content, str):
                content = content.encode("utf-8")
        if len(content) > config.SIGNATURE_UPLOAD_MAX_BYTES:
            raise FileTooLarge(f"File size should be less than {config.SIGNATURE_UPLOAD_MAX_BYTES // (1024 * 1024)}MB")

        self._file_bytes = content
        self._file_type = kind
        self._filename = filename

    # -------- Commit ---------------------------------------------------------
    def commit(self) -> SignatureArtifact:
        if self.mode == CaptureMode.DRAW:
            if not self._strokes:
                raise EmptyCapture("Please draw your signature")
            buf = io.BytesIO()
            self._canvas.save(buf, format="PNG")
            return SignatureArtifact(
                mode=CaptureMode.DRAW,
                payload=_data_url("image/png", buf.getvalue()),
                style=self.style,
                content_type="image/png",
            )

        if self.mode == CaptureMode.TYPE:
            text = self._text.strip()
            if not text:
                raise EmptyCapture("Please type your signature")
            payload = json.dumps(
                {"text": text, "style": self.style.model_dump()},
                sort_keys=True,
                separators=(",", ":"),
            )
            return SignatureArtifact(mode=CaptureMode.TYPE, payload=payload, style=self.style)

        if not self._file_bytes:
            raise EmptyCapture("Please upload your signature")
        return SignatureArtifact(
            mode=CaptureMode.UPLOAD,
            payload=_data_url(self._file_type, self._file_bytes),
            filename=self._filename,
            content_type=self._file_type,
        )


def begin_capture(
    mode: CaptureMode,
    style: Optional[SignatureStyle] = None,
    canvas_size: Optional[Tuple[int, int]] = None,
) -> CaptureSession:
    """Open a capture session in the given mode."""
    if canvas_size is None:
        return CaptureSession(mode, style=style)
    return CaptureSession(mode, style=style, canvas_size=canvas_size)


def capture_drawing(
    strokes: Sequence[Sequence[Sequence[float]]],
    style: Optional[SignatureStyle] = None,
    canvas_size: Optional[Tuple[int, int]] = None,
) -> SignatureArtifact:
    """One-shot draw capture from a list of strokes."""
    session = begin_capture(CaptureMode.DRAW, style=style, canvas_size=canvas_size)
    for stroke in strokes:
        session.add_stroke(stroke)
    return session.commit()


def capture_typed(text: str, style: Optional[SignatureStyle] = None) -> SignatureArtifact:
    session = begin_capture(CaptureMode.TYPE, style=style)
    session.set_text(text)
    return session.commit()


def capture_upload(
    data: Union[bytes, BinaryIO],
    content_type: str,
    size: Optional[int] = None,
    filename: Optional[str] = None,
) -> SignatureArtifact:
    session = begin_capture(CaptureMode.UPLOAD)
    session.attach_file(data, content_type, size=size, filename=filename)
    return session.commit()

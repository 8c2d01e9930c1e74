"""OCR engine handles.

An engine handle wraps one live recognizer. The worker pool owns a fixed set of
handles and never lets two jobs use the same handle at once.
"""

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
import logging
from typing import Any, Protocol

from PIL import Image
import pytesseract

logger = logging.getLogger(__name__)

PAGE_SEG_MODES = range(0, 14)
ENGINE_MODES = range(0, 4)


@dataclass(frozen=True)
class EngineConfig:
    """Per-job engine parameters.

    Attributes:
        page_seg_mode: Tesseract page segmentation mode (0-13)
        engine_mode: Tesseract OCR engine mode (0-3), None keeps the handle's own
        preserve_interword_spaces: Keep runs of spaces between words
        char_whitelist: Restrict recognition to these characters
        extra: Engine-specific ``-c name=value`` overrides
    """

    page_seg_mode: int = 3
    engine_mode: int | None = None
    preserve_interword_spaces: bool = True
    char_whitelist: str | None = None
    extra: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.page_seg_mode not in PAGE_SEG_MODES:
            raise ValueError(f"page_seg_mode must be between 0 and 13, got {self.page_seg_mode}")
        if self.engine_mode is not None and self.engine_mode not in ENGINE_MODES:
            raise ValueError(f"engine_mode must be between 0 and 3, got {self.engine_mode}")
        for key in self.extra:
            if not key or any(ch.isspace() or ch == "=" for ch in key):
                raise ValueError(f"Invalid engine parameter name: {key!r}")

    def with_page_seg_mode(self, page_seg_mode: int) -> "EngineConfig":
        return replace(self, page_seg_mode=page_seg_mode)

    def to_tesseract_config(self) -> str:
        """Render as a Tesseract command line fragment, e.g. ``--psm 6 -c preserve_interword_spaces=1``."""
        parts = []
        if self.engine_mode is not None:
            parts.append(f"--oem {self.engine_mode}")
        parts.append(f"--psm {self.page_seg_mode}")
        parts.append(f"-c preserve_interword_spaces={1 if self.preserve_interword_spaces else 0}")
        if self.char_whitelist:
            parts.append(f"-c tessedit_char_whitelist={self.char_whitelist}")
        parts.extend(f"-c {key}={value}" for key, value in sorted(self.extra.items()))
        return " ".join(parts)

    def to_dict(self) -> dict[str, Any]:
        return {
            "page_seg_mode": self.page_seg_mode,
            "engine_mode": self.engine_mode,
            "preserve_interword_spaces": self.preserve_interword_spaces,
            "char_whitelist": self.char_whitelist,
            "extra": dict(self.extra),
        }


# Baseline restored on a handle after every job
BASE_CONFIG = EngineConfig(page_seg_mode=3, preserve_interword_spaces=True)


def compute_average_confidence(data: Mapping[str, Any] | None) -> float:
    """Mean confidence of the engine's words, else of its symbols, else its own scalar.

    Args:
        data: Engine-native result with optional ``words``/``symbols`` lists and ``confidence``

    Returns:
        Confidence between 0 and 100; 0 when nothing usable is present
    """
    if not data:
        return 0.0
    for key in ("words", "symbols"):
        items = data.get(key) or []
        if items:
            total = 0.0
            for item in items:
                try:
                    total += float(item.get("confidence") or 0)
                except (TypeError, ValueError):
                    continue
            return total / len(items)
    try:
        return float(data.get("confidence") or 0)
    except (TypeError, ValueError):
        return 0.0


class EngineHandle(Protocol):
    """One live recognizer instance."""

    def set_config(self, config: EngineConfig) -> None: ...

    def recognize(self, image_path: str) -> dict[str, Any]: ...

    def terminate(self) -> None: ...


EngineFactory = Callable[[int], EngineHandle]

LINE_KEYS = ("block_num", "par_num", "line_num")


def _row_value(data: Mapping[str, Any], key: str, index: int) -> Any:
    column = data.get(key) or []
    return column[index] if index < len(column) else 0


def text_from_data(data: Mapping[str, Any]) -> str:
    """Rebuild plain text from ``image_to_data`` rows.

    Words sharing a block, paragraph and line number form one line; lines keep
    Tesseract's reading order.
    """
    lines: dict[tuple[Any, ...], list[str]] = {}
    for index, word_text in enumerate(data.get("text") or []):
        word = str(word_text).strip()
        if not word:
            continue
        key = tuple(_row_value(data, name, index) for name in LINE_KEYS)
        lines.setdefault(key, []).append(word)
    return "\n".join(" ".join(words) for words in lines.values())


class TesseractEngine:
    """Engine handle backed by the Tesseract binary through pytesseract."""

    def __init__(self, language: str = "eng", engine_mode: int = 1, tesseract_cmd: str | None = None):
        self.language = language
        self.engine_mode = engine_mode
        self.config = BASE_CONFIG
        self.terminated = False

        # Set Tesseract command path if provided
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd

    def set_config(self, config: EngineConfig) -> None:
        self.config = config

    def _tesseract_config(self) -> str:
        config = self.config
        if config.engine_mode is None:
            config = replace(config, engine_mode=self.engine_mode)
        return config.to_tesseract_config()

    def recognize(self, image_path: str) -> dict[str, Any]:
        """Recognize an image file.

        Returns:
            ``{"text", "confidence", "words"}`` where each word holds ``text``,
            ``confidence`` and a ``bbox`` with ``x0/y0/x1/y1``
        """
        if self.terminated:
            raise RuntimeError("Tesseract engine has been terminated")
        config = self._tesseract_config()
        with Image.open(image_path) as image:
            data = pytesseract.image_to_data(
                image, lang=self.language, config=config, output_type=pytesseract.Output.DICT
            )
        text = text_from_data(data)

        words = []
        for i, word_text in enumerate(data.get("text", [])):
            try:
                conf = float(data["conf"][i])
            except (KeyError, IndexError, TypeError, ValueError):
                continue
            # Tesseract reports -1 for layout rows that carry no word
            if conf < 0 or not str(word_text).strip():
                continue
            left, top = data["left"][i], data["top"][i]
            words.append(
                {
                    "text": str(word_text),
                    "confidence": conf,
                    "bbox": {"x0": left, "y0": top, "x1": left + data["width"][i], "y1": top + data["height"][i]},
                }
            )

        confidence = sum(word["confidence"] for word in words) / len(words) if words else 0.0
        logger.debug(f"Tesseract recognized {len(words)} words from {image_path} ({config})")
        return {"text": text, "confidence": confidence, "words": words}

    def terminate(self) -> None:
        # pytesseract spawns one process per call, so there is no live process to stop
        self.terminated = True


def tesseract_engine_factory(
    language: str = "eng", engine_mode: int = 1, tesseract_cmd: str | None = None
) -> EngineFactory:
    """Build a factory producing one TesseractEngine per pool slot."""

    def create(index: int) -> EngineHandle:
        logger.debug(f"Creating Tesseract engine #{index} (lang={language}, oem={engine_mode})")
        return TesseractEngine(language=language, engine_mode=engine_mode, tesseract_cmd=tesseract_cmd)

    return create

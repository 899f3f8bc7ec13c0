"""
Clipboard Collaborators
=======================

Narrow clipboard interfaces the engine reads input from and writes results
to, plus two implementations:

- MemoryClipboard: in-process clipboard for headless runs and tests
- TkClipboard: the desktop clipboard, text through tkinter and bitmaps read
  with Pillow's ImageGrab

Sinks raise ClipboardError when the platform clipboard cannot be used.
"""

import logging
from enum import Enum
from typing import Optional, Protocol

from PIL import Image, ImageGrab

from clipfilter.core.errors import ClipboardError

logger = logging.getLogger(__name__)


class ClipboardKind(Enum):
    NONE = "none"
    TEXT = "text"
    BITMAP = "bitmap"


class ClipboardSource(Protocol):
    def detect_kind(self) -> ClipboardKind:
        ...

    def read_text(self) -> str:
        ...

    def read_image(self) -> Optional[Image.Image]:
        """Return an image the caller owns and must close, or None."""
        ...


class ClipboardSink(Protocol):
    def write_text(self, text: str) -> None:
        ...

    def write_image(self, image: Image.Image) -> None:
        ...


class MemoryClipboard:
    """Holds either a text value or an image, like a real clipboard."""

    def __init__(self, text: str = "", image: Optional[Image.Image] = None):
        self._text = text
        self._image = image

    def detect_kind(self) -> ClipboardKind:
        if self._image is not None:
            return ClipboardKind.BITMAP
        if self._text:
            return ClipboardKind.TEXT
        return ClipboardKind.NONE

    def read_text(self) -> str:
        return self._text

    def read_image(self) -> Optional[Image.Image]:
        return self._image.copy() if self._image is not None else None

    def write_text(self, text: str) -> None:
        self._release_image()
        self._text = text

    def write_image(self, image: Image.Image) -> None:
        self._release_image()
        self._text = ""
        self._image = image

    @property
    def text(self) -> str:
        return self._text

    @property
    def image(self) -> Optional[Image.Image]:
        return self._image

    def _release_image(self) -> None:
        if self._image is not None:
            self._image.close()
            self._image = None


class TkClipboard:
    """
    Desktop clipboard.

    Text is read and written through a hidden tkinter root. Images are read
    with ``PIL.ImageGrab.grabclipboard()``; Tk has no way to place a bitmap
    on the clipboard, so ``write_image`` raises ClipboardError.
    """

    def __init__(self):
        self._root = None

    def _tk(self):
        if self._root is None:
            import tkinter
            try:
                self._root = tkinter.Tk()
            except tkinter.TclError as e:
                raise ClipboardError(f"no display available for the clipboard: {e}") from e
            self._root.withdraw()
        return self._root

    def detect_kind(self) -> ClipboardKind:
        image = self._grab_image(quiet=True)
        if image is not None:
            image.close()
            return ClipboardKind.BITMAP
        return ClipboardKind.TEXT if self.read_text() else ClipboardKind.NONE

    def read_text(self) -> str:
        import tkinter
        try:
            return self._tk().clipboard_get()
        except tkinter.TclError:
            return ""
        except ClipboardError as e:
            logger.warning(f"Clipboard text unavailable: {e}")
            return ""

    def read_image(self) -> Optional[Image.Image]:
        return self._grab_image()

    def _grab_image(self, quiet: bool = False) -> Optional[Image.Image]:
        try:
            grabbed = ImageGrab.grabclipboard()
        except (OSError, NotImplementedError) as e:
            if not quiet:
                logger.warning(f"Clipboard image unavailable: {e}")
            return None
        if isinstance(grabbed, Image.Image):
            return grabbed
        # A list of file names when files were copied
        if isinstance(grabbed, list) and grabbed:
            try:
                image = Image.open(grabbed[0])
                image.load()
                return image
            except (OSError, ValueError):
                return None
        return None

    def write_text(self, text: str) -> None:
        import tkinter
        root = self._tk()
        try:
            root.clipboard_clear()
            root.clipboard_append(text)
            root.update()
        except tkinter.TclError as e:
            raise ClipboardError(f"cannot write text to the clipboard: {e}") from e

    def write_image(self, image: Image.Image) -> None:
        raise ClipboardError("writing images to the clipboard is not supported by the Tk backend")

    def close(self) -> None:
        if self._root is not None:
            self._root.destroy()
            self._root = None

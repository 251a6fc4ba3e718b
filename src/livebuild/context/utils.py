# src/livebuild/context/utils.py
"""
Screenshot helpers for attaching media to a post (mss + PIL).
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Optional, Tuple

import mss
from PIL import Image


def grab_primary_screen(region: Optional[Tuple[int, int, int, int]] = None) -> Image.Image:
    """
    Capture the primary monitor (or a region of it) as an RGB PIL image.
    """
    with mss.mss() as sct:
        # monitors[0] is the virtual union of all screens
        mon = sct.monitors[1] if len(sct.monitors) > 1 else sct.monitors[0]

        if region is not None:
            rx, ry, rw, rh = region
            mon = {
                "left": mon["left"] + rx,
                "top": mon["top"] + ry,
                "width": rw,
                "height": rh,
            }

        frame = sct.grab(mon)
        return Image.frombytes("RGB", (frame.width, frame.height), frame.rgb)


def save_screenshot(directory: Path, *, now: Optional[datetime] = None) -> Path:
    """
    Capture the screen and write it as a PNG under `directory`.
    Returns the file path.
    """
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
    path = directory / f"screenshot_{stamp}.png"
    grab_primary_screen().save(path, format="PNG")
    return path


__all__ = ["grab_primary_screen", "save_screenshot"]

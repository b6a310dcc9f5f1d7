"""
Presentation palette for the light and dark theme.

The session manager only knows a dark-mode flag; this module turns the flag
into the CSS custom properties the web client applies to its root element.
"""
from __future__ import annotations

from typing import Dict


LIGHT_PALETTE: Dict[str, str] = {
    "--background-color": "#f0f4f8",
    "--text-color": "#222222",
    "--card-background": "#ffffff",
    "--border-color": "#dddddd",
    "--input-background": "#f9f9f9",
    "--shadow-color": "rgba(0,0,0,0.1)",
}

DARK_PALETTE: Dict[str, str] = {
    "--background-color": "#1a1a1a",
    "--text-color": "#ffffff",
    "--card-background": "#2d2d2d",
    "--border-color": "#404040",
    "--input-background": "#3a3a3a",
    "--shadow-color": "rgba(0,0,0,0.3)",
}


def palette_for(is_dark: bool) -> Dict[str, str]:
    return dict(DARK_PALETTE if is_dark else LIGHT_PALETTE)


class ThemeState:
    """Theme applier handed to the SessionManager; keeps the active palette."""

    def __init__(self) -> None:
        self.is_dark = False
        self.palette = palette_for(False)

    def __call__(self, is_dark: bool) -> None:
        self.is_dark = bool(is_dark)
        self.palette = palette_for(self.is_dark)


def stylesheet(is_dark: bool) -> str:
    """Render the palette as a `:root` rule."""
    body = "".join(f"{name}:{value};" for name, value in palette_for(is_dark).items())
    return f":root{{{body}}}"

from __future__ import annotations

from .base import PaneProvider, PaneRef
from .tmux import TmuxPaneProvider

__all__ = ["PaneProvider", "PaneRef", "TmuxPaneProvider"]

"""
gickinstaller - Phased installer for the IAMGickPro design platform
"""

__version__ = "1.0.0"

from .core import Installer, InstallerError

__all__ = ["Installer", "InstallerError"]

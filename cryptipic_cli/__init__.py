"""Command line interface for the CryptiPic steganography core."""

from .main import CryptiPicCLI, main

__all__ = ["CryptiPicCLI", "main"]

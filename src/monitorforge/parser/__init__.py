"""Settings and batch file loading."""

from monitorforge.parser.loader import load_batch, load_settings

__all__ = ["load_batch", "load_settings"]

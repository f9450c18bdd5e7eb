"""ilytix: curate image datasets with perceptual hashing."""

__version__ = "0.1.0"

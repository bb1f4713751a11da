"""
Error taxonomy for terrain loading.

Every failure that aborts a mountain load derives from TerrainLoadError so
callers can substitute procedural terrain with a single except clause.
Out-of-bounds queries are not errors and have no exception type.
"""


class TerrainLoadError(Exception):
    """Base class for failures that abort loading a mountain's terrain."""

    pass


class ManifestMissingError(TerrainLoadError):
    """Raised when a mountain has no manifest file."""

    pass


class ManifestParseError(TerrainLoadError):
    """Raised when a manifest exists but cannot be parsed or validated."""

    pass


class RasterMissingError(TerrainLoadError):
    """Raised when a heightmap or overlay raster file does not exist."""

    pass


class RasterFormatError(TerrainLoadError):
    """Raised for unknown raster encodings or rasters with no samples."""

    pass

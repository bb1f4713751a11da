"""
Heightmap loading operations for terrain processing.

This module decodes elevation rasters in the three supported encodings into
flat float arrays:

- ``image-raster``: any single-band image readable by rasterio (PNG, GeoTIFF, ...),
  normalized to [0, 1] for integer data
- ``raw16``: unsigned 16-bit little-endian samples, normalized to [0, 1]
- ``raw32``: 32-bit little-endian floats, used as-is

Every decoded sample is then transformed by ``value * height_scale + height_offset``.
"""

import logging
import math
import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple, Union

import numpy as np
import rasterio
from rasterio.errors import NotGeoreferencedWarning, RasterioIOError

from ridgeline.terrain.errors import RasterFormatError, RasterMissingError
from ridgeline.terrain.manifest import HeightmapSpec, MountainManifest, load_manifest

logger = logging.getLogger(__name__)

IMAGE_RASTER = "image-raster"
RAW16 = "raw16"
RAW32 = "raw32"
SUPPORTED_FORMATS = (IMAGE_RASTER, RAW16, RAW32)

_RAW_DTYPES = {
    RAW16: np.dtype("<u2"),
    RAW32: np.dtype("<f4"),
}


@dataclass
class Heightmap:
    """Decoded elevation samples for a square grid."""

    data: np.ndarray
    """Flat float64 array of length resolution**2, row-major (index = z * resolution + x)."""

    resolution: int

    @property
    def grid(self) -> np.ndarray:
        """Samples as a (resolution, resolution) array indexed [z, x]."""
        return self.data.reshape(self.resolution, self.resolution)


def read_image_raster(path: Path) -> np.ndarray:
    """
    Read band 1 of an image raster and normalize integer data to [0, 1].

    Args:
        path: Raster file readable by rasterio

    Returns:
        2D float64 array

    Raises:
        RasterMissingError: If the file does not exist
        RasterFormatError: If rasterio cannot decode the file
    """
    path = Path(path)
    if not path.is_file():
        raise RasterMissingError(f"Raster file not found: {path}")

    try:
        # Game heightmaps carry no georeferencing
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", NotGeoreferencedWarning)
            with rasterio.open(path) as ds:
                if ds.count == 0:
                    raise RasterFormatError(f"No raster bands found in {path}")
                if ds.count > 1:
                    logger.warning(f"{path.name} has {ds.count} bands, using band 1")
                band = ds.read(1)
    except RasterioIOError as e:
        raise RasterFormatError(f"Could not decode image raster {path}: {e}") from e

    if band.dtype == np.uint8:
        return band.astype(np.float64) / 255.0
    if band.dtype == np.uint16:
        return band.astype(np.float64) / 65535.0
    if np.issubdtype(band.dtype, np.integer):
        logger.warning(f"Unexpected integer data type in {path}: {band.dtype}, using raw values")
    return band.astype(np.float64)


def read_raw_samples(path: Path, fmt: str) -> np.ndarray:
    """
    Read a headerless raw sample file.

    Args:
        path: Raw file
        fmt: 'raw16' or 'raw32'

    Returns:
        1D float64 array (raw16 normalized to [0, 1])
    """
    path = Path(path)
    if not path.is_file():
        raise RasterMissingError(f"Raster file not found: {path}")

    dtype = _RAW_DTYPES[fmt]
    raw = path.read_bytes()
    remainder = len(raw) % dtype.itemsize
    if remainder:
        logger.warning(
            f"{path.name}: {len(raw)} bytes is not a multiple of {dtype.itemsize}, "
            f"ignoring {remainder} trailing bytes"
        )
        raw = raw[: len(raw) - remainder]

    samples = np.frombuffer(raw, dtype=dtype).astype(np.float64)
    if fmt == RAW16:
        samples /= 65535.0
    return samples


def _square_from_samples(samples: np.ndarray, declared: int, source: str) -> Tuple[np.ndarray, int]:
    """Reshape flat samples to a square grid, inferring the side from the count on mismatch."""
    count = samples.size
    if count == declared * declared:
        return samples.reshape(declared, declared), declared

    inferred = math.isqrt(count)
    if inferred < 1:
        raise RasterFormatError(f"{source} contains no samples")

    logger.warning(
        f"{source}: declared resolution {declared} expects {declared * declared} samples, "
        f"found {count}; inferring resolution {inferred}"
    )
    if inferred * inferred != count:
        logger.warning(f"{source}: ignoring {count - inferred * inferred} samples past {inferred}x{inferred}")
    return samples[: inferred * inferred].reshape(inferred, inferred), inferred


def decode_heightmap(path: Union[str, Path], spec: HeightmapSpec) -> Heightmap:
    """
    Decode a heightmap file according to its encoding descriptor.

    Args:
        path: Raster file
        spec: Encoding, declared resolution, scale/offset and flip flag

    Returns:
        Heightmap with scale and offset applied

    Raises:
        RasterFormatError: Unknown encoding or empty raster
        RasterMissingError: File not found
    """
    path = Path(path)
    fmt = spec.format.lower()
    if fmt not in SUPPORTED_FORMATS:
        raise RasterFormatError(
            f"Unsupported heightmap format '{spec.format}' (expected one of {SUPPORTED_FORMATS})"
        )

    if fmt == IMAGE_RASTER:
        grid = read_image_raster(path)
        if grid.size == 0:
            raise RasterFormatError(f"{path.name} contains no samples")
        rows, cols = grid.shape
        if rows != cols:
            side = min(rows, cols)
            logger.warning(f"{path.name} is {cols}x{rows}, cropping to {side}x{side}")
            grid = grid[:side, :side]
        resolution = grid.shape[0]
        if resolution != spec.resolution:
            logger.warning(
                f"{path.name}: declared resolution {spec.resolution}, image is {resolution}; "
                f"using {resolution}"
            )
    else:
        samples = read_raw_samples(path, fmt)
        grid, resolution = _square_from_samples(samples, spec.resolution, path.name)

    if spec.flip_y:
        grid = grid[::-1, :]

    data = np.ascontiguousarray(grid, dtype=np.float64).ravel() * spec.height_scale + spec.height_offset

    logger.debug(
        f"Decoded {path.name} ({fmt}): {resolution}x{resolution}, "
        f"range {data.min():.2f} to {data.max():.2f}"
    )
    return Heightmap(data=data, resolution=resolution)


def load_heightmap(
    mountain: Union[str, MountainManifest],
    chunk_coord: Optional[Tuple[int, int]] = None,
    data_root: Optional[Path] = None,
) -> Heightmap:
    """
    Load the heightmap for a mountain, or for one of its chunks.

    Args:
        mountain: Mountain id or an already loaded manifest
        chunk_coord: (cx, cz) chunk coordinates when the layout is chunked
        data_root: Data root used when ``mountain`` is an id

    Returns:
        Heightmap

    Raises:
        RasterFormatError, RasterMissingError: On decode failures
        ManifestMissingError, ManifestParseError: When loading the manifest by id
    """
    manifest = mountain if isinstance(mountain, MountainManifest) else load_manifest(mountain, data_root)

    if chunk_coord is None:
        path = manifest.heightmap_path()
    else:
        path = manifest.chunk_path(chunk_coord)

    logger.debug(f"Loading heightmap {path}")
    return decode_heightmap(path, manifest.heightmap)


def read_overlay_raster(path: Union[str, Path]) -> np.ndarray:
    """
    Read a surface-colour overlay as normalized RGB.

    Single-band images are treated as greyscale; extra bands past the third
    (alpha) are ignored.

    Args:
        path: Raster file readable by rasterio

    Returns:
        (rows, cols, 3) float64 array in [0, 1]; row 0 is the minimum-z edge

    Raises:
        RasterMissingError: If the file does not exist
        RasterFormatError: If rasterio cannot decode the file
    """
    path = Path(path)
    if not path.is_file():
        raise RasterMissingError(f"Overlay file not found: {path}")

    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", NotGeoreferencedWarning)
            with rasterio.open(path) as ds:
                if ds.count == 0:
                    raise RasterFormatError(f"No raster bands found in {path}")
                bands = ds.read(list(range(1, min(ds.count, 3) + 1)))
    except RasterioIOError as e:
        raise RasterFormatError(f"Could not decode overlay raster {path}: {e}") from e

    if bands.shape[0] < 3:
        bands = np.repeat(bands[:1], 3, axis=0)

    if bands.dtype == np.uint8:
        rgb = bands.astype(np.float64) / 255.0
    elif bands.dtype == np.uint16:
        rgb = bands.astype(np.float64) / 65535.0
    else:
        rgb = np.clip(bands.astype(np.float64), 0.0, 1.0)

    logger.debug(f"Read overlay {path.name}: {rgb.shape[2]}x{rgb.shape[1]}")
    return np.moveaxis(rgb, 0, -1)

"""
Mountain manifest loading.

A manifest is a JSON descriptor stored at ``<data_root>/<mountain_id>/manifest.json``
describing world bounds, the heightmap encoding, the chunk layout, an optional
surface-colour overlay, hazard markers and routes. Manifests are read once per
mountain selection and are immutable afterwards.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from ridgeline import config
from ridgeline.terrain.errors import ManifestMissingError, ManifestParseError

logger = logging.getLogger(__name__)

Vec3 = Tuple[float, float, float]


@dataclass(frozen=True)
class WorldBounds:
    """Axis-aligned world extent of a mountain."""

    min_x: float
    max_x: float
    min_z: float
    max_z: float
    min_elevation: float = 0.0
    max_elevation: float = 0.0

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def depth(self) -> float:
        return self.max_z - self.min_z

    def contains(self, x: float, z: float) -> bool:
        return self.min_x <= x <= self.max_x and self.min_z <= z <= self.max_z


@dataclass(frozen=True)
class HeightmapSpec:
    """Raster encoding descriptor."""

    format: str
    """One of 'image-raster', 'raw16', 'raw32'."""

    resolution: int
    """Declared samples per side."""

    height_scale: float = 1.0
    height_offset: float = 0.0
    flip_y: bool = False
    filename: str = "heightmap.png"


@dataclass(frozen=True)
class ChunkLayout:
    """How the world is partitioned into chunks and where chunk rasters live."""

    enabled: bool = False
    """If False a single heightmap covers the bounds and is resampled into chunks."""

    count_x: int = 1
    count_z: int = 1
    chunk_size: float = config.DEFAULT_CHUNK_SIZE
    chunk_resolution: int = config.DEFAULT_CHUNK_RESOLUTION
    pattern: str = config.DEFAULT_CHUNK_PATTERN
    """File name pattern with ``{x}`` and ``{z}`` placeholders."""


@dataclass(frozen=True)
class SurfaceOverlaySpec:
    """Optional colour-keyed surface overlay."""

    has_overlay: bool = False
    filename: str = ""
    color_map: Dict[str, Tuple[int, int, int]] = field(default_factory=dict)


@dataclass(frozen=True)
class HazardMarker:
    type: str
    position: Vec3
    radius: float
    severity: float


@dataclass(frozen=True)
class Route:
    name: str
    difficulty: str
    waypoints: Tuple[Vec3, ...]


@dataclass(frozen=True)
class MountainManifest:
    """Immutable per-mountain descriptor."""

    mountain_id: str
    root: Path
    bounds: WorldBounds
    heightmap: HeightmapSpec
    chunks: ChunkLayout = field(default_factory=ChunkLayout)
    surfaces: SurfaceOverlaySpec = field(default_factory=SurfaceOverlaySpec)
    hazards: Tuple[HazardMarker, ...] = ()
    routes: Tuple[Route, ...] = ()

    @property
    def chunks_dir(self) -> Path:
        return self.root / config.CHUNKS_SUBDIR

    def chunk_path(self, chunk_coord: Tuple[int, int]) -> Path:
        """Path of the raster file for one chunk."""
        cx, cz = chunk_coord
        return self.chunks_dir / self.chunks.pattern.format(x=cx, z=cz)

    def heightmap_path(self) -> Path:
        return self.root / self.heightmap.filename

    def overlay_path(self) -> Optional[Path]:
        if not self.surfaces.has_overlay or not self.surfaces.filename:
            return None
        return self.root / self.surfaces.filename

    def get_route(self, name: str) -> Optional[Route]:
        for route in self.routes:
            if route.name == name:
                return route
        return None

    @classmethod
    def from_dict(cls, data: dict, mountain_id: str, root: Path) -> "MountainManifest":
        """
        Build a manifest from its decoded JSON record.

        Raises:
            ManifestParseError: If required sections are missing or malformed.
        """
        if not isinstance(data, dict):
            raise ManifestParseError(f"Manifest for '{mountain_id}' must be a JSON object")

        try:
            bounds = _parse_bounds(data["bounds"])
            heightmap = _parse_heightmap(data["heightmap"])
            chunks = _parse_chunks(data.get("chunks", {}))
            surfaces = _parse_surfaces(data.get("surfaces", {}))
            hazards = tuple(_parse_hazard(h) for h in data.get("hazards", []))
            routes = tuple(_parse_route(r) for r in data.get("routes", []))
        except KeyError as e:
            raise ManifestParseError(f"Manifest for '{mountain_id}' is missing key {e}") from e
        except (TypeError, ValueError, AttributeError) as e:
            raise ManifestParseError(f"Manifest for '{mountain_id}' is malformed: {e}") from e

        if bounds.max_x <= bounds.min_x or bounds.max_z <= bounds.min_z:
            raise ManifestParseError(f"Manifest for '{mountain_id}' has empty bounds: {bounds}")
        if heightmap.resolution <= 0:
            raise ManifestParseError(f"Manifest for '{mountain_id}' has non-positive resolution")
        if chunks.chunk_size <= 0 or chunks.chunk_resolution < 2:
            raise ManifestParseError(f"Manifest for '{mountain_id}' has invalid chunk layout")

        return cls(
            mountain_id=mountain_id,
            root=Path(root),
            bounds=bounds,
            heightmap=heightmap,
            chunks=chunks,
            surfaces=surfaces,
            hazards=hazards,
            routes=routes,
        )


def _parse_vec3(value) -> Vec3:
    if isinstance(value, dict):
        return (float(value.get("x", 0.0)), float(value.get("y", 0.0)), float(value.get("z", 0.0)))
    values = [float(v) for v in value]
    if len(values) == 2:
        # 2D positions are (x, z) on the ground plane
        return (values[0], 0.0, values[1])
    if len(values) != 3:
        raise ValueError(f"Expected a 3D position, got {value!r}")
    return (values[0], values[1], values[2])


def _parse_bounds(data: dict) -> WorldBounds:
    return WorldBounds(
        min_x=float(data["min_x"]),
        max_x=float(data["max_x"]),
        min_z=float(data["min_z"]),
        max_z=float(data["max_z"]),
        min_elevation=float(data.get("min_elevation", 0.0)),
        max_elevation=float(data.get("max_elevation", 0.0)),
    )


def _parse_heightmap(data: dict) -> HeightmapSpec:
    return HeightmapSpec(
        format=str(data["format"]),
        resolution=int(data["resolution"]),
        height_scale=float(data.get("height_scale", 1.0)),
        height_offset=float(data.get("height_offset", 0.0)),
        flip_y=bool(data.get("flip_y", False)),
        filename=str(data.get("filename", "heightmap.png")),
    )


def _parse_chunks(data: dict) -> ChunkLayout:
    return ChunkLayout(
        enabled=bool(data.get("enabled", False)),
        count_x=int(data.get("count_x", 1)),
        count_z=int(data.get("count_z", 1)),
        chunk_size=float(data.get("chunk_size", config.DEFAULT_CHUNK_SIZE)),
        chunk_resolution=int(data.get("chunk_resolution", config.DEFAULT_CHUNK_RESOLUTION)),
        pattern=str(data.get("pattern", config.DEFAULT_CHUNK_PATTERN)),
    )


def _parse_surfaces(data: dict) -> SurfaceOverlaySpec:
    color_map = {}
    for name, color in data.get("color_map", {}).items():
        if isinstance(color, dict):
            rgb = (int(color["r"]), int(color["g"]), int(color["b"]))
        else:
            rgb = tuple(int(c) for c in color)[:3]
        color_map[str(name)] = rgb
    return SurfaceOverlaySpec(
        has_overlay=bool(data.get("has_overlay", False)),
        filename=str(data.get("filename", "")),
        color_map=color_map,
    )


def _parse_hazard(data: dict) -> HazardMarker:
    return HazardMarker(
        type=str(data["type"]),
        position=_parse_vec3(data["position"]),
        radius=float(data.get("radius", 0.0)),
        severity=float(data.get("severity", 1.0)),
    )


def _parse_route(data: dict) -> Route:
    return Route(
        name=str(data["name"]),
        difficulty=str(data.get("difficulty", "")),
        waypoints=tuple(_parse_vec3(w) for w in data.get("waypoints", [])),
    )


def manifest_path(mountain_id: str, data_root: Optional[Path] = None) -> Path:
    """Location of a mountain's manifest file."""
    root = Path(data_root) if data_root is not None else config.MOUNTAINS_DIR
    return root / mountain_id / config.DEFAULT_MANIFEST_NAME


def load_manifest(mountain_id: str, data_root: Optional[Path] = None) -> MountainManifest:
    """
    Load and validate a mountain manifest.

    Args:
        mountain_id: Directory name of the mountain under the data root
        data_root: Directory holding mountain folders (default: config.MOUNTAINS_DIR)

    Returns:
        MountainManifest

    Raises:
        ManifestMissingError: If the manifest file does not exist
        ManifestParseError: If the file is not valid JSON or fails validation
    """
    path = manifest_path(mountain_id, data_root)
    logger.info(f"Loading manifest for '{mountain_id}' from {path}")

    if not path.is_file():
        raise ManifestMissingError(f"No manifest for mountain '{mountain_id}' at {path}")

    try:
        with open(path, "r") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ManifestParseError(f"Invalid JSON in {path}: {e}") from e

    manifest = MountainManifest.from_dict(data, mountain_id, path.parent)
    logger.debug(
        f"Manifest '{mountain_id}': format={manifest.heightmap.format}, "
        f"chunks_enabled={manifest.chunks.enabled}, hazards={len(manifest.hazards)}, "
        f"routes={len(manifest.routes)}"
    )
    return manifest

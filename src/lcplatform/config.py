# src/lcplatform/config.py
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Iterator, Mapping, Tuple

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .contracts.core import (
    DEFAULT_BAND_ORDER,
    BandName,
    ClassLabel,
    ReflectanceCalibration,
    TreeParams,
)

# Placeholders permitidos por clave
INPUT_PLACEHOLDERS: Mapping[str, Tuple[str, ...]] = MappingProxyType({
    "scene_dir": ("scene",),
    "band_file": ("scene", "token"),
    "study_area": (),
    "training_sites": (),
})
OUTPUT_PLACEHOLDERS: Mapping[str, Tuple[str, ...]] = MappingProxyType({
    "reflectance": ("scene",),
    "samples": ("scene",),
    "tree": ("scene",),
    "classmap": ("scene",),
    "confidence": ("scene",),
    "map": ("scene",),
    "report": ("scene",),
})


class Settings(BaseSettings):
    """
    Config unificada del proyecto. No toca disco.
    Debe ser construida y provista por composition/di.py (CLI/adapters);
    los services reciben solo los valores que necesitan.
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="LC_",
        env_nested_delimiter="__",
        extra="forbid",
        frozen=True,
    )

    # --- básicos ---
    project_root: Path = Path(".")

    # --- dominio ---
    band_order: Tuple[BandName, ...] = DEFAULT_BAND_ORDER
    # nombre lógico -> token del archivo (Landsat C2 L2: *_SR_B2.TIF ...)
    band_files: Dict[BandName, str] = Field(default_factory=lambda: {
        "blue": "SR_B2",
        "green": "SR_B3",
        "red": "SR_B4",
        "nir": "SR_B5",
        "swir1": "SR_B6",
        "swir2": "SR_B7",
    })
    reflectance: ReflectanceCalibration = ReflectanceCalibration()
    tree: TreeParams = TreeParams()
    label_field: str = "class"
    classes: Tuple[ClassLabel, ...] = ()  # colores/macro declarados por nombre

    # --- clasificación ---
    tile_rows: int = Field(256, ge=1)
    workers: int = Field(1, ge=1)
    with_confidence: bool = False

    input_patterns: Dict[str, str] = Field(default_factory=lambda: {
        "scene_dir": "01-Raw/{scene}",
        "band_file": "01-Raw/{scene}/{scene}_{token}.TIF",
        "study_area": "00-Config/study_area.geojson",
        "training_sites": "00-Config/training_sites.geojson",
    })
    output_patterns: Dict[str, str] = Field(default_factory=lambda: {
        "reflectance": "02-Work/REFLECTANCE/{scene}/reflectance.tif",
        "samples": "02-Work/SAMPLES/{scene}/samples.csv",
        "tree": "02-Work/MODEL/{scene}/tree.json",
        "classmap": "03-Products/CLASSMAP/{scene}/classmap.tif",
        "confidence": "03-Products/CLASSMAP/{scene}/confidence.tif",
        "map": "03-Products/CLASSMAP/{scene}/classmap.png",
        "report": "03-Products/CLASSMAP/{scene}/summary.csv",
    })

    # ----------------------------
    # Normalizadores / validadores
    # ----------------------------
    @field_validator("project_root", mode="before")
    @classmethod
    def _abs_root(cls, v: Path | str) -> Path:
        return Path(v).expanduser().resolve()

    @field_validator("input_patterns")
    @classmethod
    def _check_in(cls, d: Dict[str, str]) -> Dict[str, str]:
        _check_placeholders("input_patterns", d, INPUT_PLACEHOLDERS)
        return d

    @field_validator("output_patterns")
    @classmethod
    def _check_out(cls, d: Dict[str, str]) -> Dict[str, str]:
        _check_placeholders("output_patterns", d, OUTPUT_PLACEHOLDERS)
        return d

    @model_validator(mode="after")
    def _bands_have_files(self) -> "Settings":
        if len(set(self.band_order)) != len(self.band_order):
            raise ValueError(f"band_order con duplicados: {self.band_order}")
        missing = [b for b in self.band_order if b not in self.band_files]
        if missing:
            raise ValueError(f"band_files no define token para: {missing}")
        return self

    # ----------------------------
    # Helpers puros (sin side-effects)
    # ----------------------------
    def in_path(self, key: str, **fmt) -> Path:
        pat = self.input_patterns[key]
        return (self.project_root / pat.format(**fmt)).resolve()

    def out_path(self, key: str, **fmt) -> Path:
        """Resuelve patrón de salida (no crea carpetas)."""
        pat = self.output_patterns[key]
        return (self.project_root / pat.format(**fmt)).resolve()

    def band_paths(self, scene: str) -> Dict[BandName, Path]:
        """Rutas de cada banda de `band_order` para una escena."""
        return {b: self.in_path("band_file", scene=scene, token=self.band_files[b]) for b in self.band_order}


def _check_placeholders(field: str, d: Mapping[str, str], allowed_by_key: Mapping[str, Tuple[str, ...]]) -> None:
    for k, pat in d.items():
        allowed = set(allowed_by_key.get(k, ()))
        unknown = {name for name in _iter_placeholders(pat)} - allowed
        if unknown:
            raise ValueError(f"{field}[{k}] usa placeholders no permitidos: {sorted(unknown)}")


# Utilidad interna: detectar {placeholders}
def _iter_placeholders(fmt: str) -> Iterator[str]:
    # Busca {name} simple; no formatea
    start = 0
    while True:
        i = fmt.find("{", start)
        if i == -1:
            break
        j = fmt.find("}", i + 1)
        if j == -1:
            break
        name = fmt[i + 1 : j].strip()
        if name:
            yield name
        start = j + 1


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Instancia cacheada. Úsala SOLO desde composition/di.py o CLI.
    Prohibido usarla en services/ (dominio). Para tests, recuerda limpiar:
        get_settings.cache_clear()
    """
    return Settings()

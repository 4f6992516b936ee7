# src/lcplatform/contracts/core.py
from __future__ import annotations

import re
from datetime import date, datetime, timezone
from enum import Enum
from typing import Iterable, Literal, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field, PositiveInt, field_validator, model_validator

# -------------------------
# Bandas
# -------------------------
# Nombres lógicos (no dependen del sensor); el orden lo fija Settings.band_order
BandName = str
DEFAULT_BAND_ORDER: Tuple[BandName, ...] = ("blue", "green", "red", "nir", "swir1", "swir2")

ClassId = PositiveInt
NODATA_CODE = 0  # código reservado en el raster clasificado

# -------------------------
# Colores tipados
# -------------------------
class RGB8(BaseModel):
    model_config = ConfigDict(frozen=True)
    r: int = Field(200, ge=0, le=255)
    g: int = Field(200, ge=0, le=255)
    b: int = Field(200, ge=0, le=255)
    def as_tuple(self) -> tuple[int, int, int]: return (self.r, self.g, self.b)
    def to_hex(self) -> str: return f"#{self.r:02X}{self.g:02X}{self.b:02X}"

# Paleta por defecto para clases sin color declarado (ciclo)
DEFAULT_PALETTE: Tuple[RGB8, ...] = (
    RGB8(r=34, g=139, b=34),    # verde
    RGB8(r=210, g=180, b=140),  # suelo / pasto seco
    RGB8(r=178, g=34, b=34),    # urbano
    RGB8(r=30, g=144, b=255),   # agua
    RGB8(r=255, g=215, b=0),
    RGB8(r=148, g=0, b=211),
    RGB8(r=128, g=128, b=128),
    RGB8(r=0, g=206, b=209),
)

# -------------------------
# Etiquetas de clase
# -------------------------
class MacroClass(str, Enum):
    VEGETATION = "vegetation"
    BARE = "bare"
    URBAN = "urban"
    WATER = "water"
    OTHER = "other"

class ClassLabel(BaseModel):
    model_config = ConfigDict(frozen=True)
    id: ClassId
    name: str
    macro: MacroClass = MacroClass.OTHER
    color: RGB8 = RGB8()

    @field_validator("name")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        v2 = v.strip()
        if not v2:
            raise ValueError("name no puede ser vacío")
        return v2


class ClassLabelMapping(BaseModel):
    """
    Enumeración ordenada de clases: código entero <-> nombre.
    - ids consecutivos 1..K en el mismo orden que `labels`
    - 0 queda reservado para no-data en el raster clasificado
    Se fija una vez (extracción) y se propaga hasta el render.
    """
    model_config = ConfigDict(frozen=True)
    labels: Tuple[ClassLabel, ...]

    @model_validator(mode="after")
    def _check_ids(self) -> "ClassLabelMapping":
        names = [c.name for c in self.labels]
        if len(set(names)) != len(names):
            raise ValueError(f"Nombres de clase duplicados: {names}")
        ids = [int(c.id) for c in self.labels]
        if ids != list(range(1, len(ids) + 1)):
            raise ValueError(f"ids de clase deben ser 1..K en orden; recibido {ids}")
        return self

    @classmethod
    def from_names(
        cls,
        names: Iterable[str],
        declared: Sequence[ClassLabel] = (),
    ) -> "ClassLabelMapping":
        """
        Construye el mapping en el orden dado. Si hay clases declaradas
        (Settings.classes) con el mismo nombre, hereda color y macro.
        """
        by_name = {c.name: c for c in declared}
        out: list[ClassLabel] = []
        for i, name in enumerate(names):
            d = by_name.get(name)
            out.append(ClassLabel(
                id=i + 1,
                name=name,
                macro=d.macro if d else MacroClass.OTHER,
                color=d.color if d else DEFAULT_PALETTE[i % len(DEFAULT_PALETTE)],
            ))
        return cls(labels=tuple(out))

    def __len__(self) -> int:
        return len(self.labels)

    def names(self) -> Tuple[str, ...]:
        return tuple(c.name for c in self.labels)

    def code_of(self, name: str) -> int:
        for c in self.labels:
            if c.name == name:
                return int(c.id)
        raise KeyError(f"Clase desconocida: {name!r}")

    def name_of(self, code: int) -> str:
        if not 1 <= int(code) <= len(self.labels):
            raise KeyError(f"Código de clase fuera de rango: {code}")
        return self.labels[int(code) - 1].name

    def palette(self) -> dict[int, tuple[int, int, int]]:
        return {int(c.id): c.color.as_tuple() for c in self.labels}

# -------------------------
# Identidad de escena
# -------------------------
# Landsat Collection 2: LC08_L2SP_PPPRRR_YYYYMMDD_yyyymmdd_CC_TX
_LANDSAT_ID_RE = re.compile(
    r"^(?P<sensor>L[COTEM]0[4-9])_(?P<level>L[12][A-Z]{2})_(?P<path>\d{3})(?P<row>\d{3})_(?P<acq>\d{8})"
)

class SceneId(BaseModel):
    model_config = ConfigDict(frozen=True)
    name: str
    acquired: Optional[date] = None

    @field_validator("name")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        v2 = v.strip()
        if not v2:
            raise ValueError("name de escena no puede ser vacío")
        return v2

    @classmethod
    def from_landsat_id(cls, product_id: str) -> "SceneId":
        m = _LANDSAT_ID_RE.match(product_id.strip().upper())
        if not m:
            raise ValueError(f"product id Landsat inválido: {product_id}")
        acq = datetime.strptime(m.group("acq"), "%Y%m%d").date()
        return cls(name=product_id.strip(), acquired=acq)

# -------------------------
# Calibración radiométrica
# -------------------------
class ReflectanceCalibration(BaseModel):
    """
    DN -> reflectancia (%) = (DN * scale + offset) * 100, solo para DN en
    [valid_min, valid_max]. Defaults: Landsat Collection 2 Level-2 SR.
    La coherencia del rango se valida en ReflectanceService (InvalidRangeError).
    """
    model_config = ConfigDict(frozen=True)
    valid_min: float = 7273
    valid_max: float = 43636
    scale: float = 0.0000275
    offset: float = -0.2

    def output_range(self) -> tuple[float, float]:
        a = (self.valid_min * self.scale + self.offset) * 100.0
        b = (self.valid_max * self.scale + self.offset) * 100.0
        return (min(a, b), max(a, b))

# -------------------------
# Parámetros del árbol (CART)
# -------------------------
class TreeParams(BaseModel):
    """Defaults equivalentes a los de scikit-learn (DecisionTreeClassifier)."""
    model_config = ConfigDict(frozen=True)
    criterion: Literal["gini", "entropy"] = "gini"
    max_depth: Optional[PositiveInt] = None  # None = sin límite
    min_samples_split: int = Field(2, ge=2)
    min_samples_leaf: int = Field(1, ge=1)
    min_impurity_decrease: float = Field(0.0, ge=0.0)

# -------------------------
# Ejecuciones / auditoría
# -------------------------
class Stage(str, Enum):
    LOAD = "load"
    CROP = "crop"
    CORRECT = "correct"
    EXTRACT = "extract"
    TRAIN = "train"
    CLASSIFY = "classify"
    EXPORT = "export"

class RunMeta(BaseModel):
    model_config = ConfigDict(frozen=True)
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    scene: SceneId
    roi_id: str | None = None
    calibration: ReflectanceCalibration | None = None
    notes: str | None = None
    ended_at: datetime | None = None

    def end_now(self) -> "RunMeta":
        return self.model_copy(update={"ended_at": datetime.now(timezone.utc)})

    @property
    def duration_s(self) -> float | None:
        if self.ended_at is None:
            return None
        return (self.ended_at - self.started_at).total_seconds()

class RunError(BaseModel):
    model_config = ConfigDict(frozen=True)
    stage: Stage
    message: str
    detail: str | None = None

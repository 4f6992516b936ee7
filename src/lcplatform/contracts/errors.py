# src/lcplatform/contracts/errors.py
"""
Jerarquía de errores del pipeline de clasificación.

    LandCoverError                      <- base (lleva la etapa que falló)
    ├── InvalidRangeError               <- calibración degenerada (correct)
    ├── TrainingDataError (ValueError)  <- datos de entrenamiento inválidos
    │   ├── EmptyTrainingSetError       <- extracción sin filas / < 2 clases
    │   └── InsufficientDataError       <- entrenador con < 2 filas / < 2 clases
    └── FeatureMismatchError (ValueError) <- bandas del raster != features del árbol

Todos son fatales: no hay reintentos ni salidas parciales. No-data NO es error.
"""

from __future__ import annotations

from typing import Optional, Sequence

from .core import RunError, Stage


class LandCoverError(Exception):
    """Base de todos los errores del dominio."""

    stage: Stage = Stage.LOAD

    def __init__(self, message: str, *, stage: Optional[Stage] = None, detail: Optional[str] = None) -> None:
        super().__init__(message)
        self.message: str = message
        self.detail: Optional[str] = detail
        if stage is not None:
            self.stage = stage

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, stage={self.stage.value!r})"

    def to_run_error(self) -> RunError:
        return RunError(stage=self.stage, message=self.message, detail=self.detail)


class InvalidRangeError(LandCoverError, ValueError):
    """VALID_MIN >= VALID_MAX o scale == 0."""

    stage = Stage.CORRECT


class TrainingDataError(LandCoverError, ValueError):
    """Datos de entrenamiento inutilizables (no finitos, formas incoherentes...)."""

    stage = Stage.TRAIN


class EmptyTrainingSetError(TrainingDataError):
    """Tras descartar filas con no-data quedan 0 filas o menos de 2 clases."""

    stage = Stage.EXTRACT

    def __init__(self, n_rows: int, labels: Sequence[str] = ()) -> None:
        labels = tuple(labels)
        super().__init__(
            f"Conjunto de entrenamiento insuficiente: {n_rows} filas válidas, "
            f"{len(labels)} clase(s) distinta(s) {list(labels)}; se requieren >=1 fila y >=2 clases"
        )
        self.n_rows: int = n_rows
        self.labels: tuple[str, ...] = labels


class InsufficientDataError(TrainingDataError):
    """El entrenador recibió < 2 filas o < 2 etiquetas distintas."""

    stage = Stage.TRAIN

    def __init__(self, n_rows: int, n_labels: int) -> None:
        super().__init__(
            f"Datos insuficientes para inducir un árbol: {n_rows} fila(s), "
            f"{n_labels} etiqueta(s) distinta(s); se requieren >=2 de cada una"
        )
        self.n_rows: int = n_rows
        self.n_labels: int = n_labels


class FeatureMismatchError(LandCoverError, ValueError):
    """El orden/número de bandas no coincide con las features del árbol."""

    stage = Stage.CLASSIFY

    def __init__(self, expected: Sequence[str], got: Sequence[str]) -> None:
        super().__init__(
            f"Bandas del raster {list(got)} no coinciden con las features del árbol {list(expected)}"
        )
        self.expected: tuple[str, ...] = tuple(expected)
        self.got: tuple[str, ...] = tuple(got)


__all__ = [
    "LandCoverError",
    "InvalidRangeError",
    "TrainingDataError",
    "EmptyTrainingSetError",
    "InsufficientDataError",
    "FeatureMismatchError",
]

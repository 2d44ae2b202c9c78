from __future__ import annotations

from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator


class ConfigBase(BaseModel):
    model_config = {"extra": "forbid"}


VectorSpec = Union[float, List[float], Dict[int, float]]


class MatricesSpec(ConfigBase):
    stiffness: str
    mass: str
    lumping: Literal["hrz", "none"] = "hrz"
    blocks: Optional[List[List[int]]] = None
    field_components: int = 1

    @field_validator("stiffness", "mass")
    @classmethod
    def _path_required(cls, value: str) -> str:
        if not value:
            raise ValueError("matrix path is required")
        return value

    @field_validator("field_components")
    @classmethod
    def _components_positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("field_components must be >= 1")
        return value


class DampingSpec(ConfigBase):
    rayleigh_mass: float = 0.0
    loss_tangent: Optional[float] = None
    frequency: Optional[float] = None

    @model_validator(mode="after")
    def _validate_choice(self) -> "DampingSpec":
        if self.rayleigh_mass < 0.0:
            raise ValueError("rayleigh_mass must be >= 0")
        if (self.loss_tangent is None) != (self.frequency is None):
            raise ValueError("loss_tangent and frequency must be given together")
        if self.loss_tangent is not None:
            if self.rayleigh_mass != 0.0:
                raise ValueError("give either rayleigh_mass or loss_tangent/frequency, not both")
            if self.loss_tangent < 0.0:
                raise ValueError("loss_tangent must be >= 0")
            if self.frequency <= 0.0:
                raise ValueError("frequency must be > 0")
        return self


class TimeSpec(ConfigBase):
    t_end: float
    dt: Optional[float] = None
    step_multiplier: float = 1.0
    terminal_step: Literal["refactorize", "reuse"] = "refactorize"
    eigen_maxiter: Optional[int] = None
    eigen_tol: float = 0.0

    @field_validator("t_end")
    @classmethod
    def _t_end_positive(cls, value: float) -> float:
        if value <= 0.0:
            raise ValueError("t_end must be > 0")
        return value

    @field_validator("dt")
    @classmethod
    def _dt_positive(cls, value: Optional[float]) -> Optional[float]:
        if value is not None and value <= 0.0:
            raise ValueError("dt must be > 0")
        return value

    @field_validator("step_multiplier")
    @classmethod
    def _multiplier_positive(cls, value: float) -> float:
        if value <= 0.0:
            raise ValueError("step_multiplier must be > 0")
        return value

    @field_validator("eigen_maxiter")
    @classmethod
    def _maxiter_positive(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value < 1:
            raise ValueError("eigen_maxiter must be >= 1")
        return value


class InitialSpec(ConfigBase):
    displacement: VectorSpec = 0.0
    velocity: VectorSpec = 0.0


class ResponseSpec(ConfigBase):
    dof: Optional[int] = None
    weights: Optional[List[float]] = None

    @model_validator(mode="after")
    def _validate_choice(self) -> "ResponseSpec":
        if self.dof is not None and self.weights is not None:
            raise ValueError("give either dof or weights, not both")
        if self.dof is not None and self.dof < 0:
            raise ValueError("dof must be >= 0")
        return self


class LoadSpec(ConfigBase):
    values: Dict[int, float] = Field(default_factory=dict)
    ramp_time: float = 0.0

    @field_validator("ramp_time")
    @classmethod
    def _ramp_nonneg(cls, value: float) -> float:
        if value < 0.0:
            raise ValueError("ramp_time must be >= 0")
        return value


class SimulationConfig(ConfigBase):
    case_name: str = "transient"
    units: str = "SI"
    matrices: MatricesSpec
    time: TimeSpec
    damping: DampingSpec = Field(default_factory=DampingSpec)
    initial: InitialSpec = Field(default_factory=InitialSpec)
    response: ResponseSpec = Field(default_factory=ResponseSpec)
    load: Optional[LoadSpec] = None
    track_energy: bool = True
    log_every: int = 25
    notes: Optional[str] = None

    @field_validator("units")
    @classmethod
    def _units_si(cls, value: str) -> str:
        if value != "SI":
            raise ValueError("Only SI units are supported currently")
        return value


def format_validation_error(exc: ValidationError, *, filename: str) -> str:
    parts = []
    for error in exc.errors():
        loc = ".".join(str(item) for item in error.get("loc", []))
        msg = error.get("msg", "invalid value")
        parts.append(f"{loc}: {msg}")
    details = "; ".join(parts) if parts else str(exc)
    return f"{filename}: invalid configuration: {details}"

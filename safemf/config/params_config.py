#!filepath: safemf/config/params_config.py
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator

from safemf.engine.bindings import Loss


class ParamsConfig(BaseModel):
    """
    Training parameters as read from YAML.

    None = keep the builder default. Values are NOT range-checked here;
    Params.validate() owns every invariant.
    """
    model_config = ConfigDict(extra="forbid")

    loss: Optional[Loss] = None
    factors: Optional[int] = None
    threads: Optional[int] = None
    bins: Optional[int] = None
    iterations: Optional[int] = None
    lambda_p1: Optional[float] = None
    lambda_p2: Optional[float] = None
    lambda_q1: Optional[float] = None
    lambda_q2: Optional[float] = None
    learning_rate: Optional[float] = None
    alpha: Optional[float] = None
    c: Optional[float] = None
    nmf: Optional[bool] = None
    quiet: Optional[bool] = None

    @field_validator("loss", mode="before")
    @classmethod
    def _parse_loss(cls, value):
        if value is None:
            return None
        return Loss.parse(value)

from typing import Any, Optional

from pydantic import BaseModel, Field


class ModelLabel(BaseModel):
    label: str
    # extra keys from the model are ignored
    score: float = Field(ge=0, le=1, strict=True)

class PredictionResult(BaseModel):
    label: str
    confidence: float  # percentage, two decimals

class PredictResponse(BaseModel):
    prediction: str
    confidence: str  # formatted with two decimals, e.g. "93.21"

    @classmethod
    def from_result(cls, result: PredictionResult) -> "PredictResponse":
        return cls(prediction=result.label, confidence=f"{result.confidence:.2f}")

class ErrorResponse(BaseModel):
    error: str
    details: Optional[Any] = None

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_core import PydanticCustomError

from gemini_proxy.errors import (
    INVALID_PARAMETERS,
    INVALID_PROMPT,
    MISSING_PROMPT,
    RequestValidationFailure,
)


MAX_OUTPUT_TOKENS = {
    "short": 30,
    "medium": 250,
    "long": 500,
}
DEFAULT_MAX_OUTPUT_TOKENS = MAX_OUTPUT_TOKENS["medium"]


class GenerateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    prompt: str | None = Field(None, validate_default=True)
    temperature: float = Field(0.7, ge=0.0, le=1.0)
    response_length: Any = Field("medium", alias="responseLength")

    @field_validator("prompt", mode="before")
    @classmethod
    def prompt_not_empty(cls, v: Any):
        if v is None:
            raise PydanticCustomError("missing_prompt", "prompt is required")
        if not isinstance(v, str) or not v.strip():
            raise PydanticCustomError("invalid_prompt", "prompt must be a non-empty string")
        return v


class GenerationConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    temperature: float
    max_output_tokens: int = Field(alias="maxOutputTokens")
    top_p: float = Field(0.5, alias="topP")
    top_k: int = Field(20, alias="topK")

    def to_payload(self) -> dict:
        return self.model_dump(by_alias=True)


class GenerateResponse(BaseModel):
    response: str


def parse_generate_request(payload: Any) -> GenerateRequest:
    """Validate a decoded JSON body; anything that is not an object counts as empty."""
    if not isinstance(payload, dict):
        payload = {}
    try:
        return GenerateRequest.model_validate(payload)
    except ValidationError as exc:
        error_types = {err["type"] for err in exc.errors()}
        if "missing_prompt" in error_types:
            raise RequestValidationFailure(MISSING_PROMPT) from exc
        if "invalid_prompt" in error_types:
            raise RequestValidationFailure(INVALID_PROMPT) from exc
        raise RequestValidationFailure(INVALID_PARAMETERS, str(exc)) from exc


def build_generation_config(request: GenerateRequest) -> GenerationConfig:
    # anything that is not a known length, strings or not, is medium
    length = request.response_length
    max_tokens = DEFAULT_MAX_OUTPUT_TOKENS
    if isinstance(length, str):
        max_tokens = MAX_OUTPUT_TOKENS.get(length, DEFAULT_MAX_OUTPUT_TOKENS)
    return GenerationConfig(
        temperature=request.temperature,
        max_output_tokens=max_tokens,
    )

"""Request bodies accepted by the HTTP endpoints."""

from typing import Any

from pydantic import BaseModel, Field

from switchboard.orchestrator.request import RequestOptions


class ChatMessageRequest(BaseModel):
    message: str = Field(..., min_length=1)
    provider_id: str | None = None
    model: str | None = None
    required_capabilities: list[str] = Field(default_factory=list)
    preferred_providers: list[str] = Field(default_factory=list)
    exclude_providers: list[str] = Field(default_factory=list)
    exclude_unhealthy: bool = False
    temperature: float | None = Field(0.7, ge=0.0, le=2.0)
    max_tokens: int | None = Field(None, gt=0)
    top_p: float | None = Field(None, ge=0.0, le=1.0)
    system_prompt: str | None = None

    def to_options(self, *, streaming: bool) -> RequestOptions:
        return RequestOptions(
            model=self.model,
            provider_id=self.provider_id,
            streaming=streaming,
            required_capabilities=tuple(self.required_capabilities),
            preferred_providers=tuple(self.preferred_providers),
            exclude_providers=tuple(self.exclude_providers),
            exclude_unhealthy=self.exclude_unhealthy,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            top_p=self.top_p,
            system_prompt=self.system_prompt,
        )


class ProviderConfigUpdate(BaseModel):
    """Partial provider configuration; omitted fields keep their current value."""

    base_url: str | None = None
    default_model: str | None = None
    api_key: str | None = None
    api_version: str | None = None
    organization: str | None = None
    timeout_ms: int | None = Field(None, gt=0)
    retry_attempts: int | None = Field(None, ge=0)
    custom_headers: dict[str, str] | None = None

    def overrides(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class ModelSelectRequest(BaseModel):
    model: str = Field(..., min_length=1, description="Model id or provider:model")

# backend/model.py
from pydantic import BaseModel, Field
from typing import Any, Optional, List, Union

from config.settings import settings

TERMINAL_STATUSES = ("succeeded", "failed", "canceled")


class StylePreset(BaseModel):
    id: str
    name: str
    description: str
    prompt: str


class GenerationRequest(BaseModel):
    session_id: str
    main_text: str
    style_id: Optional[str] = None
    context_text: Optional[str] = None
    reference_url: Optional[str] = None
    # accepted from the UI but never sent to the provider
    reference_image: Optional[str] = Field(default=None, exclude=True)
    num_outputs: int = settings.NUM_OUTPUTS


class RefinementRequest(BaseModel):
    session_id: str
    instruction: str
    selected_index: Optional[int] = None
    num_outputs: int = settings.NUM_OUTPUTS


class SelectRequest(BaseModel):
    index: int


class GenerateResponse(BaseModel):
    session_id: str
    prompt: str
    images: List[str]


class JobRequest(BaseModel):
    prompt: str
    num_outputs: int = settings.NUM_OUTPUTS


class Prediction(BaseModel):
    """A provider job as seen by the driver; only the provider changes it."""

    id: str
    status: str
    output: Optional[Union[str, List[str]]] = None
    error: Optional[Any] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def output_urls(self) -> List[str]:
        if self.output is None:
            return []
        if isinstance(self.output, list):
            return self.output
        return [self.output]


class JobResult(BaseModel):
    job_id: str
    status: str
    images: List[str] = []
    error_message: Optional[str] = None


class ThumbnailSession(BaseModel):
    session_id: str
    last_request: Optional[GenerationRequest] = None
    thumbnails: List[str] = []
    selected_index: Optional[int] = None

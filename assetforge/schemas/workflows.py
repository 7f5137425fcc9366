from typing import Any, Literal

from pydantic import BaseModel, Field


class WorkflowResult(BaseModel):
    kind: Literal["success", "failed", "canceled"]
    return_value: dict[str, Any] | None = Field(default=None, alias="returnValue")
    error: Any = None

    class Config:
        populate_by_name = True


class WorkflowCompletion(BaseModel):
    workflow_id: str = Field(alias="workflowId")
    result: WorkflowResult
    context: dict[str, Any] = Field(default_factory=dict)

    class Config:
        populate_by_name = True


class WorkflowCompletionAck(BaseModel):
    outcome: str


class SweepResult(BaseModel):
    swept: int


class AssetStatusPush(BaseModel):
    status: Literal["pending", "processing", "completed", "failed"] | None = None
    status_message: str | None = None


class TempUrlPush(BaseModel):
    temp_image_url: str


class ThreadIdPush(BaseModel):
    thread_id: str


class WorkflowIdPush(BaseModel):
    workflow_id: str

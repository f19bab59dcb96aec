# =============================================================================
# API Request Models - Pydantic V2 Schemas
# =============================================================================
#
# These models define the shape of data coming INTO the API.
# FastAPI validates request bodies against them (automatic 422 errors).
# =============================================================================

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ChatMessage(BaseModel):
    """One conversation turn."""

    role: Literal["user", "assistant"] = Field(
        ...,
        description="Who wrote this turn",
    )
    content: str = Field(..., description="Turn text")


class ChatRequest(BaseModel):
    """
    Request body for POST /chat.

    `messages` is the whole conversation in order; the last entry is the new
    question and must come from the user.

    Example:
        {
            "messages": [
                {"role": "user", "content": "Which agency had the best close rate?"}
            ]
        }
    """

    messages: list[ChatMessage] = Field(
        ...,
        min_length=1,
        description="Ordered conversation; the last entry must have role 'user'.",
    )

    @model_validator(mode="after")
    def _last_message_from_user(self) -> "ChatRequest":
        if self.messages[-1].role != "user":
            raise ValueError("The last message must have role 'user'")
        return self

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "messages": [
                        {"role": "user", "content": "Summarise last month's sales calls."},
                    ]
                },
                {
                    "messages": [
                        {"role": "user", "content": "Which agencies did we evaluate?"},
                        {"role": "assistant", "content": "Three agencies: ..."},
                        {"role": "user", "content": "Which one scored highest?"},
                    ]
                },
            ]
        }
    )

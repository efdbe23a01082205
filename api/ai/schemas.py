"""
Request models for the AI endpoints.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

ContentType = Literal["social_media_post", "blog_post", "email", "ad_copy", "song_description"]
ContentLength = Literal["short", "medium", "long"]
Tone = Literal["professional", "casual", "friendly", "enthusiastic", "informative", "humorous", "urgent", "curious"]
Platform = Literal["instagram", "twitter", "tiktok", "all"]
VideoStyle = Literal["explainer", "tutorial", "storytelling", "promotional"]


class GenerateContentRequest(BaseModel):
    content_type: ContentType
    topic: str = Field(..., min_length=1, max_length=500)
    tone: Tone = "professional"
    target_audience: str = Field(default="music lovers", max_length=200)
    keywords: list[str] = Field(default_factory=list, max_length=20)
    length: ContentLength = "medium"
    language: str = Field(default="English", max_length=50)
    brand_voice: str = Field(default="friendly and professional", max_length=200)
    call_to_action: str | None = Field(default=None, max_length=200)


class OptimizeContentRequest(BaseModel):
    content: str = Field(..., min_length=1, max_length=20000)
    target_keywords: list[str] = Field(default_factory=list, max_length=20)
    seo_focus: bool = True
    readability: bool = True
    engagement: bool = True
    character_limit: int | None = Field(default=None, ge=1, le=100000)


class VariationsRequest(BaseModel):
    content: str = Field(..., min_length=1, max_length=20000)
    count: int = Field(default=3, ge=1, le=10)
    tone: Tone | None = None
    style: str | None = Field(default=None, max_length=100)
    length: Literal["shorter", "same", "longer"] = "same"


class HashtagsRequest(BaseModel):
    content: str = Field(..., min_length=1, max_length=5000)
    platform: Platform = "all"
    count: int = Field(default=10, ge=1, le=30)


class VideoScriptRequest(BaseModel):
    content: str = Field(..., min_length=1, max_length=20000)
    duration: int = Field(default=60, ge=5, le=1800)
    style: VideoStyle = "explainer"
    include_visuals: bool = True


class AnalyzeContentRequest(BaseModel):
    content: str = Field(..., min_length=1, max_length=50000)


class SubjectLinesRequest(BaseModel):
    content: str = Field(..., min_length=1, max_length=20000)
    count: int = Field(default=3, ge=1, le=10)
    tone: Literal["professional", "casual", "urgent", "friendly", "curious"] = "professional"
    max_length: int = Field(default=60, ge=10, le=200)
    include_emojis: bool = True


class PersonalizeRequest(BaseModel):
    content: str = Field(..., min_length=1, max_length=20000)
    user_data: dict[str, Any] = Field(default_factory=dict)
    merge_tags: bool = True

"""
设备回调 HTTP 接口的数据模型。
"""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field


class UploadTextRequest(BaseModel):
    text: str = Field(..., description="设备回传的文本内容")


class UploadLocationRequest(BaseModel):
    lat: float = Field(..., description="纬度")
    lon: float = Field(..., description="经度")


class FileEntry(BaseModel):
    name: str
    is_dir: bool = False


class FileListingRequest(BaseModel):
    # 设备通常不知道自己的 id，缺省时按 model 头匹配
    device_id: str | None = Field(default=None, description="设备ID（可选）")
    path: str = Field(default="/", description="本次列举的目录")
    entries: List[FileEntry] = Field(default_factory=list)


class RelayResponse(BaseModel):
    resultCode: int = 0
    resultMsg: str = "OK"

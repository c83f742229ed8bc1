"""
配置加载（.env / 环境变量）。

所有可调参数集中在 Settings 中，启动时由 load_settings() 一次性读取。
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


DEFAULT_TTS_URL_TEMPLATE = (
    "https://translate.google.com/translate_tts?ie=UTF-8&tl=en&tk=995126.592330&client=t&q={text}"
)


def _load_dotenv_if_available() -> None:
    # 优先：device_relay/.env；其次：cwd/.env
    candidates = [
        Path(__file__).resolve().parent.parent / ".env",
        Path.cwd() / ".env",
    ]
    for p in candidates:
        if p.exists():
            load_dotenv(p)
            break


@dataclass(frozen=True)
class Settings:
    # 服务端
    server_host: str = "0.0.0.0"
    server_port: int = 8999

    # 唯一授权的操作员会话（飞书 chat_id）
    operator_chat_id: str = ""

    # 飞书应用
    feishu_app_id: str | None = None
    feishu_app_secret: str | None = None
    feishu_verification_token: str | None = None

    # 设备心跳
    heartbeat_interval_s: float = 5.0
    keepalive_url: str | None = None
    keepalive_timeout_s: int = 5

    # 设备回传文件的落盘目录
    upload_dir: str = "uploadedFile"

    # 下发指令的编码格式：delimited（verb:arg）/ json
    wire_format: str = "delimited"

    # text_to_speech 的播放链接模板，{text} 处填入 URL 编码后的文本
    tts_url_template: str = DEFAULT_TTS_URL_TEMPLATE

    log_dir: str = str(Path.cwd() / "logs")


def load_settings() -> Settings:
    _load_dotenv_if_available()

    def _get_number(key: str, default, cast=int):
        raw = (os.getenv(key) or "").strip()
        if not raw:
            return default
        try:
            return cast(raw)
        except ValueError:
            return default

    wire_format = os.getenv("WIRE_FORMAT", "delimited").strip().lower()
    if wire_format not in {"delimited", "json"}:
        wire_format = "delimited"

    return Settings(
        server_host=os.getenv("RELAY_HOST", "0.0.0.0"),
        server_port=_get_number("RELAY_PORT", 8999),
        operator_chat_id=os.getenv("OPERATOR_CHAT_ID", "").strip(),
        feishu_app_id=os.getenv("FEISHU_APP_ID"),
        feishu_app_secret=os.getenv("FEISHU_APP_SECRET"),
        feishu_verification_token=os.getenv("FEISHU_VERIFICATION_TOKEN"),
        heartbeat_interval_s=_get_number("HEARTBEAT_INTERVAL_S", 5.0, float),
        keepalive_url=os.getenv("KEEPALIVE_URL") or None,
        keepalive_timeout_s=_get_number("KEEPALIVE_TIMEOUT_S", 5),
        upload_dir=os.getenv("UPLOAD_DIR", "uploadedFile"),
        wire_format=wire_format,
        tts_url_template=os.getenv("TTS_URL_TEMPLATE", DEFAULT_TTS_URL_TEMPLATE),
        log_dir=os.getenv("LOG_DIR", str(Path.cwd() / "logs")),
    )

"""
指令目录：每个需要操作员输入的 verb 对应一份 CommandSpec（字段名、提示语、参数组装方式）。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple
from urllib.parse import quote

from ..core.config import DEFAULT_TTS_URL_TEMPLATE


@dataclass(frozen=True)
class CommandSpec:
    verb: str
    # 依次向操作员收集的字段 (字段名, 提示语)
    fields: Tuple[Tuple[str, str], ...]
    # 把收集到的值转成下发参数；默认原样
    build: Optional[Callable[[Tuple[str, ...]], Tuple[str, ...]]] = None

    @property
    def arity(self) -> int:
        return len(self.fields)

    def field_name(self, index: int) -> str:
        return self.fields[index][0]

    def prompt(self, index: int) -> str:
        return self.fields[index][1]

    def finalize(self, values: Tuple[str, ...]) -> Tuple[str, ...]:
        return self.build(values) if self.build else values


def tts_link(text: str, template: str = DEFAULT_TTS_URL_TEMPLATE) -> str:
    return template.format(text=quote(text, safe=""))


class CommandCatalog:
    def __init__(self, *, tts_url_template: str = DEFAULT_TTS_URL_TEMPLATE) -> None:
        self.tts_url_template = tts_url_template
        specs = [
            CommandSpec("send_message", (
                ("number", "°• Please reply the number to which you want to send the SMS"),
                ("text", "°• Great, now enter the message you want to send to this number"),
            )),
            CommandSpec("show_notification", (
                ("title", "°• Enter the message you want to appear as notification"),
                ("link", "°• Great, now enter the link you want to be opened by the notification"),
            )),
            CommandSpec("open_target_link", (
                ("link", "°• Enter the link you want to send"),
            )),
            CommandSpec(
                "text_to_speech",
                (("text", "°• Enter the text to speak"),),
                build=lambda values: (tts_link(values[0], self.tts_url_template),),
            ),
            CommandSpec("get_file", (
                ("path", "°• Enter the path of the file you want to download"),
            )),
            CommandSpec("delete_file", (
                ("path", "°• Enter the path of the file you want to delete"),
            )),
            CommandSpec("toast", (
                ("text", "°• Enter the message that you want to appear on the target device"),
            )),
            CommandSpec("play_audio", (
                ("link", "°• Enter the audio link you want to play"),
            )),
        ]
        self._specs: Dict[str, CommandSpec] = {s.verb: s for s in specs}

    def get(self, verb: str) -> CommandSpec | None:
        return self._specs.get(verb)

    def __contains__(self, verb: object) -> bool:
        return verb in self._specs

"""
多步参数收集状态机。

状态是显式的标签值，不在会话里存回调：
- Idle：没有待收集的指令
- AwaitingArg1(verb, target)：已发出第一个提示，等待操作员回复
- AwaitingArg2(verb, target, field, arg1)：第一个参数已收下，等待第二个

begin / advance 都是纯函数，只返回 Transition（新状态 + 要发的提示 + 要下发的信封），
真正的发送与投递由调用方完成。
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional, Union

from ..core.codec import CommandEnvelope
from ..core.errors import UnknownVerb
from .catalog import CommandCatalog


@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class AwaitingArg1:
    verb: str
    target: str
    prompt_message_id: Optional[str] = None


@dataclass(frozen=True)
class AwaitingArg2:
    verb: str
    target: str
    field: str
    arg1: str
    prompt_message_id: Optional[str] = None


State = Union[Idle, AwaitingArg1, AwaitingArg2]

IDLE = Idle()


@dataclass(frozen=True)
class Transition:
    state: State
    prompt: Optional[str] = None
    envelope: Optional[CommandEnvelope] = None


def with_prompt_id(state: State, message_id: str | None) -> State:
    """记录提示消息的ID，用于校验操作员的回复对象。"""
    if isinstance(state, (AwaitingArg1, AwaitingArg2)):
        return replace(state, prompt_message_id=message_id)
    return state


def accepts_reply(state: State, reply_to: str | None) -> bool:
    """只有“回复机器人提示消息”的消息才会被当作参数。"""
    if isinstance(state, Idle) or not reply_to:
        return False
    # 提示消息发送失败时拿不到ID，此时接受任意回复
    return state.prompt_message_id is None or state.prompt_message_id == reply_to


class ConversationMachine:
    def __init__(self, catalog: CommandCatalog) -> None:
        self.catalog = catalog

    def begin(self, verb: str, target: str) -> Transition:
        spec = self.catalog.get(verb)
        if spec is None:
            raise UnknownVerb(verb)
        return Transition(state=AwaitingArg1(verb=verb, target=target), prompt=spec.prompt(0))

    def advance(self, state: State, reply: str) -> Transition:
        if isinstance(state, Idle):
            return Transition(state=IDLE)

        spec = self.catalog.get(state.verb)
        if spec is None:
            return Transition(state=IDLE)

        if isinstance(state, AwaitingArg1):
            if spec.arity == 1:
                args = spec.finalize((reply,))
                return Transition(state=IDLE, envelope=CommandEnvelope(state.verb, state.target, args))
            return Transition(
                state=AwaitingArg2(
                    verb=state.verb,
                    target=state.target,
                    field=spec.field_name(0),
                    arg1=reply,
                ),
                prompt=spec.prompt(1),
            )

        args = spec.finalize((state.arg1, reply))
        return Transition(state=IDLE, envelope=CommandEnvelope(state.verb, state.target, args))

import json

from device_relay.channel.feishu_events import (
    Challenge,
    InboundAction,
    InboundMessage,
    RecentIds,
    event_token,
    parse_event,
)


def _message_payload(text, message_type="text", parent_id=None):
    message = {
        "chat_id": "oc_1",
        "message_id": "om_1",
        "message_type": message_type,
        "content": json.dumps({"text": text}),
    }
    if parent_id:
        message["parent_id"] = parent_id
    return {
        "schema": "2.0",
        "header": {"event_type": "im.message.receive_v1", "token": "tok"},
        "event": {"message": message},
    }


def test_url_verification():
    assert parse_event({"type": "url_verification", "challenge": "abc"}) == Challenge("abc")


def test_text_message_strips_mentions():
    event = parse_event(_message_payload("@_user_1 Execute command"))
    assert event == InboundMessage(chat_id="oc_1", message_id="om_1", text="Execute command")


def test_reply_carries_parent_id():
    assert parse_event(_message_payload("5551234", parent_id="om_prompt")).reply_to == "om_prompt"


def test_non_text_message_has_empty_text():
    assert parse_event(_message_payload("ignored", message_type="image")).text == ""


def test_card_action_trigger():
    payload = {
        "schema": "2.0",
        "header": {"event_type": "card.action.trigger"},
        "event": {
            "context": {"open_chat_id": "oc_1", "open_message_id": "om_card"},
            "action": {"value": {"token": "device:abc"}},
        },
    }
    assert parse_event(payload) == InboundAction(chat_id="oc_1", message_id="om_card", token="device:abc")


def test_legacy_card_callback_with_string_value():
    payload = {
        "open_chat_id": "oc_1",
        "open_message_id": "om_card",
        "token": "tok",
        "action": {"value": json.dumps({"token": "up:abc"})},
    }
    assert parse_event(payload).token == "up:abc"
    assert event_token(payload) == "tok"


def test_unknown_event_is_ignored():
    assert parse_event({"header": {"event_type": "im.chat.updated_v1"}}) is None


def test_recent_ids_evicts_oldest():
    seen = RecentIds(maxlen=2)
    assert seen.check_and_add("a")
    assert not seen.check_and_add("a")
    seen.check_and_add("b")
    seen.check_and_add("c")
    assert seen.check_and_add("a")

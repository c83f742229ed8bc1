import gc
import logging

from device_relay.core.registry import UNKNOWN, DeviceRegistry, normalize_metadata


class _Handle:
    pass


def test_register_assigns_fresh_ids_and_root_cursor():
    registry = DeviceRegistry()
    ids = {registry.register({"model": f"phone-{i}"}) for i in range(20)}
    assert len(ids) == 20
    for device_id in ids:
        assert registry.get(device_id).cursor_path == "/"


def test_survivors_after_partial_unregister():
    registry = DeviceRegistry()
    ids = [registry.register({"model": str(i)}) for i in range(10)]
    removed = set(ids[::3])
    for device_id in removed:
        registry.unregister(device_id)

    for device_id in ids:
        assert (registry.get(device_id) is not None) == (device_id not in removed)
    assert len(registry.list()) == len(ids) - len(removed)


def test_unregister_is_idempotent():
    registry = DeviceRegistry()
    keep = registry.register({"model": "a"})
    gone = registry.register({"model": "b"})
    registry.unregister(gone)
    registry.unregister(gone)
    registry.unregister("never-existed")
    assert [d for d, _ in registry.list()] == [keep]


def test_metadata_defaults_to_unknown():
    meta = normalize_metadata({"model": "Pixel", "battery": "", "extra": "dropped"})
    assert meta == {
        "model": "Pixel",
        "battery": UNKNOWN,
        "version": UNKNOWN,
        "brightness": UNKNOWN,
        "provider": UNKNOWN,
    }


def test_update_cursor_ignores_absent_device():
    registry = DeviceRegistry()
    device_id = registry.register({})
    registry.update_cursor(device_id, "/sdcard")
    registry.update_cursor("missing", "/tmp")
    assert registry.get(device_id).cursor_path == "/sdcard"
    assert registry.get("missing") is None
    assert registry.get(None) is None


def test_channel_reference_is_weak():
    registry = DeviceRegistry()
    handle = _Handle()
    device_id = registry.register({"model": "x"}, handle)
    assert registry.get(device_id).channel is handle
    del handle
    gc.collect()
    assert registry.get(device_id).channel is None


def test_find_by_label():
    registry = DeviceRegistry()
    registry.register({"model": "Galaxy"})
    pixel = registry.register({"model": "Pixel"})
    assert registry.find_by_label("Pixel").id == pixel
    assert registry.find_by_label("iPhone") is None
    assert registry.find_by_label(None) is None


def test_find_by_label_warns_on_ambiguous_model(caplog):
    registry = DeviceRegistry()
    first = registry.register({"model": "Pixel"})
    registry.register({"model": "Pixel"})

    with caplog.at_level(logging.WARNING):
        assert registry.find_by_label("Pixel").id == first
    assert any("同名" in r.message for r in caplog.records)

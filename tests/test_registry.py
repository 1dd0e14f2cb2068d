"""Unit tests for the chip registry and exposed-chip records."""

import pytest

from gpiod_dbus.chip import ChipHandle, ChipInfo
from gpiod_dbus.registry import ChipRegistry, ChipRegistryError, ExposedChip


class RecordingBus:
    def __init__(self, calls):
        self.calls = calls

    def unregister_object(self, registration):
        self.calls.append(("unregister", registration))


class RecordingChip:
    def __init__(self, calls, fail=False):
        self.calls = calls
        self.fail = fail

    def close(self):
        self.calls.append(("close",))
        if self.fail:
            raise RuntimeError("close failed")


def make_record(device_id, calls, registration=7, fail=False):
    handle = ChipHandle(device_id, RecordingChip(calls, fail), ChipInfo(device_id, "test", 4))
    return ExposedChip(device_id=device_id, handle=handle, bus=RecordingBus(calls), registration=registration)


class TestExposedChip:
    def test_destroy_closes_then_unregisters(self):
        calls = []
        make_record("gpiochip0", calls).destroy()

        assert calls == [("close",), ("unregister", 7)]

    def test_destroy_skips_missing_registration(self):
        calls = []
        make_record("gpiochip0", calls, registration=None).destroy()

        assert calls == [("close",)]

    def test_destroy_unregisters_even_if_close_fails(self):
        calls = []
        record = make_record("gpiochip0", calls, fail=True)

        with pytest.raises(RuntimeError):
            record.destroy()

        assert calls == [("close",), ("unregister", 7)]

    def test_destroy_runs_once(self):
        calls = []
        record = make_record("gpiochip0", calls)
        record.destroy()
        record.destroy()

        assert calls == [("close",), ("unregister", 7)]


class TestChipRegistry:
    def test_insert_and_lookup(self):
        registry = ChipRegistry()
        record = make_record("gpiochip0", [])

        registry.insert(record)

        assert registry.lookup("gpiochip0") is record
        assert "gpiochip0" in registry
        assert len(registry) == 1

    def test_lookup_missing(self):
        assert ChipRegistry().lookup("gpiochip0") is None

    def test_duplicate_insert_raises(self):
        registry = ChipRegistry()
        registry.insert(make_record("gpiochip0", []))

        with pytest.raises(ChipRegistryError, match="already registered"):
            registry.insert(make_record("gpiochip0", []))

    def test_remove_destroys_record(self):
        calls = []
        registry = ChipRegistry()
        registry.insert(make_record("gpiochip0", calls))

        registry.remove("gpiochip0")

        assert "gpiochip0" not in registry
        assert calls == [("close",), ("unregister", 7)]

    def test_remove_missing_raises(self):
        with pytest.raises(ChipRegistryError, match="not registered"):
            ChipRegistry().remove("gpiochip0")

    def test_registry_error_is_assertion_class(self):
        assert issubclass(ChipRegistryError, AssertionError)

    def test_clear_destroys_all(self):
        calls = []
        registry = ChipRegistry()
        registry.insert(make_record("gpiochip0", calls, registration=1))
        registry.insert(make_record("gpiochip1", calls, registration=2))

        registry.clear()

        assert len(registry) == 0
        assert sorted(c for c in calls if c[0] == "unregister") == [("unregister", 1), ("unregister", 2)]
        assert registry.ids() == []

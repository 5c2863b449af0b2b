from __future__ import annotations

import pytest

from gitbot.descriptors import DescriptorStore, JobDescriptor
from gitbot.errors import ConfigurationError
from gitbot.identity import project_identity
from gitbot.store import FileStore, MemoryStore


def test_for_path_derives_identity_and_name() -> None:
    descriptor = JobDescriptor.for_path("/tmp/proj", 5)

    assert descriptor.project_id == project_identity("/tmp/proj")
    assert descriptor.path == "/tmp/proj"
    assert descriptor.interval_seconds == 5
    assert descriptor.display_name == "proj"
    assert descriptor.push is False


def test_record_is_pipe_delimited() -> None:
    descriptor = JobDescriptor.for_path("/tmp/proj", 5, push=True, display_name="My Repo")

    assert descriptor.to_record() == "/tmp/proj|5|My Repo|true\n"


def test_record_with_pipe_in_path_parses_back() -> None:
    descriptor = JobDescriptor.for_path("/tmp/odd|dir", 30)

    parsed = JobDescriptor.from_record(descriptor.project_id, descriptor.to_record())

    assert parsed == descriptor


@pytest.mark.parametrize("interval", [0, -5])
def test_non_positive_interval_is_a_configuration_error(interval) -> None:
    with pytest.raises(ConfigurationError, match="interval_seconds"):
        JobDescriptor.for_path("/tmp/proj", interval)


def test_display_name_may_not_contain_separator() -> None:
    with pytest.raises(ConfigurationError, match="display_name"):
        JobDescriptor.for_path("/tmp/proj", 5, display_name="a|b")


@pytest.mark.parametrize("record", ["garbage", "/tmp/p|abc|name|false", "/tmp/p|0|name|false"])
def test_malformed_records_raise(record) -> None:
    with pytest.raises(ConfigurationError):
        JobDescriptor.from_record("id", record)


def test_store_put_get_delete(tmp_path) -> None:
    store = DescriptorStore(FileStore(tmp_path))
    descriptor = JobDescriptor.for_path("/tmp/proj", 5)

    store.put(descriptor.project_id, descriptor)
    assert store.get(descriptor.project_id) == descriptor

    store.delete(descriptor.project_id)
    assert store.get(descriptor.project_id) is None


def test_list_all_skips_unreadable_records() -> None:
    backing = MemoryStore()
    store = DescriptorStore(backing)
    good = JobDescriptor.for_path("/tmp/proj", 5)
    store.put(good.project_id, good)
    backing.put("corrupt", "not a record")

    assert store.list_all() == [(good.project_id, good)]
    assert store.get("corrupt") is None

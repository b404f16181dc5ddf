import pytest

from druid.conversation import storage


def test_append_and_list_in_order():
    storage.append_message("bot1", "user", "hi")
    storage.append_message("bot1", "assistant", "hello")
    storage.append_message("bot2", "user", "elsewhere")

    messages = storage.list_messages("bot1")
    assert [(m.role, m.content) for m in messages] == [("user", "hi"), ("assistant", "hello")]
    assert all(m.bot_id == "bot1" for m in messages)


def test_empty_history():
    assert storage.list_messages("fresh") == []


def test_corrupt_line_skipped(isolated_config_dir):
    storage.append_message("bot1", "user", "first")
    path = isolated_config_dir / "messages" / "bot1.jsonl"
    with path.open("a", encoding="utf-8") as f:
        f.write("not json\n")
    storage.append_message("bot1", "assistant", "second")
    assert [m.content for m in storage.list_messages("bot1")] == ["first", "second"]


def test_rejects_path_like_ids():
    with pytest.raises(ValueError):
        storage.list_messages("../etc")

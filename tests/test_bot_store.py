import pytest

from druid.bots import storage
from druid.bots.models import BotFields
from druid.bots.storage import BotNotFound, NotOwner, StorageError


def _create(name="Bot", token="owner", **kwargs):
    return storage.create_bot(BotFields(name=name, personality="p", background="b"), token, **kwargs)


def test_create_and_get():
    bot = _create("Alice")
    fetched = storage.get_bot(bot.id)
    assert fetched == bot
    assert fetched.client_token == "owner"
    assert fetched.is_public is False


def test_list_is_scoped_to_token_and_newest_first():
    first = _create("First")
    second = _create("Second")
    _create("Other", token="someone-else")
    bots = storage.list_bots("owner")
    assert [b.id for b in bots] == [second.id, first.id]


def test_update_only_touches_given_fields():
    bot = _create("Alice")
    updated = storage.update_bot(bot.id, BotFields(personality="Cheerful"), "owner")
    assert updated.name == "Alice"
    assert updated.personality == "Cheerful"
    assert updated.background == "b"


def test_update_requires_owner():
    bot = _create("Alice")
    with pytest.raises(NotOwner):
        storage.update_bot(bot.id, BotFields(name="Mallory"), "intruder")
    assert storage.get_bot(bot.id).name == "Alice"


def test_missing_bot():
    with pytest.raises(BotNotFound):
        storage.delete_bot("nope", "owner")
    assert storage.get_bot("nope") is None


def test_delete():
    bot = _create()
    storage.delete_bot(bot.id, "owner")
    assert storage.get_bot(bot.id) is None
    assert storage.list_bots("owner") == []


def test_visibility_and_public_listing():
    a = _create("A")
    b = _create("B", token="other")
    _create("Private")
    storage.set_visibility(a.id, True, "owner")
    storage.set_visibility(b.id, True, "other")

    public = storage.list_public_bots()
    # most recently made public first
    assert [bot.id for bot in public] == [b.id, a.id]
    assert public[1].made_public_at is not None

    storage.set_visibility(a.id, False, "owner")
    assert [bot.id for bot in storage.list_public_bots()] == [b.id]


def test_corrupt_file_raises(isolated_config_dir):
    (isolated_config_dir / "bots.json").write_text("{broken", encoding="utf-8")
    with pytest.raises(StorageError):
        storage.list_bots("owner")

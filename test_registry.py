import json

import pytest

from sqs_consumer.core.registry import get_handler, register_handler


async def shout(message):
    return message.body.upper()


def test_registered_name():
    register_handler("shout", shout)
    assert get_handler("shout") is shout


def test_builtin_log_handler_is_registered():
    assert callable(get_handler("log"))


def test_import_path():
    assert get_handler("json:dumps") is json.dumps
    assert get_handler("json:JSONDecoder.decode") is json.JSONDecoder.decode


def test_unknown_name_lists_available():
    with pytest.raises(ValueError, match="Available:"):
        get_handler("does-not-exist")


def test_bad_import_path():
    with pytest.raises(ValueError, match="Cannot import"):
        get_handler("no_such_module_xyz:handle")
    with pytest.raises(ValueError, match="no attribute"):
        get_handler("json:nope")


def test_register_rejects_non_callable():
    with pytest.raises(ValueError):
        register_handler("broken", 42)

from unittest.mock import Mock

import pytest

from realmauth.handlers import (
    AuthenticationListener, ChallengeHandlerRegistry, RealmChallengeHandler)


def test_registry():
    registry = ChallengeHandlerRegistry()
    handler = Mock()
    registry.register("realmA", handler)
    assert registry.get("realmA") is handler
    assert "realmA" in registry
    assert registry.realms() == ["realmA"]
    assert registry.unregister("realmA") is handler
    assert registry.get("realmA") is None
    assert registry.unregister("realmA") is None

def test_registry_rejects_incomplete_registration():
    registry = ChallengeHandlerRegistry()
    with pytest.raises(ValueError):
        registry.register("", Mock())
    with pytest.raises(ValueError):
        registry.register("realmA", None)


@pytest.fixture()
def listener():
    return Mock(spec=AuthenticationListener)

@pytest.fixture()
def handler(listener):
    return RealmChallengeHandler("realmA", listener)


def test_answer_goes_to_the_active_manager(handler, listener):
    manager = Mock()
    manager.submit_answer.return_value = {"resent": True}
    handler.handle_challenge(manager, {"c": 1}, "ctx")
    listener.on_challenge_received.assert_called_once_with(handler, {"c": 1}, "ctx")
    assert handler.submit_answer({"token": "t"}) == {"resent": True}
    manager.submit_answer.assert_called_once_with({"token": "t"}, "realmA")
    assert handler.submit_answer({"token": "again"}) == {}, "No active manager any more"

def test_none_answer_removes_the_expected_answer(handler):
    manager = Mock()
    handler.handle_challenge(manager, {}, None)
    handler.submit_answer(None)
    manager.remove_expected_answer.assert_called_once_with("realmA")
    manager.submit_answer.assert_not_called()

def test_concurrent_managers_wait_and_are_released_on_success(handler, listener):
    first, second = Mock(), Mock()
    handler.handle_challenge(first, {}, None)
    handler.handle_challenge(second, {}, None)
    listener.on_challenge_received.assert_called_once()  # Only asked once
    handler.submit_success()
    first.remove_expected_answer.assert_called_once_with("realmA")
    second.remove_expected_answer.assert_called_once_with("realmA")

def test_submit_failure_fails_the_active_manager(handler):
    first, second = Mock(), Mock()
    handler.handle_challenge(first, {}, None)
    handler.handle_challenge(second, {}, None)
    handler.submit_failure({"reason": "cancelled"})
    first.request_failed.assert_called_once_with({"reason": "cancelled"})
    second.remove_expected_answer.assert_called_once_with("realmA")

def test_server_failure_fails_waiting_managers(handler, listener):
    first, second = Mock(), Mock()
    handler.handle_challenge(first, {}, None)
    handler.handle_challenge(second, {}, None)
    handler.handle_failure("ctx", {"reason": "locked"})
    listener.on_failure.assert_called_once_with("ctx", {"reason": "locked"})
    second.request_failed.assert_called_once_with(None)
    first.request_failed.assert_not_called()

def test_server_success_reaches_the_listener(handler, listener):
    handler.handle_success("ctx", {"user": "u"})
    listener.on_success.assert_called_once_with("ctx", {"user": "u"})

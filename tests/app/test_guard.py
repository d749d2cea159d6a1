"""Tests for ownership-based authorization."""

from unittest.mock import patch, MagicMock
from uuid import UUID

import pytest

from sopmaker.app.errors import ForbiddenError, NotFoundError
from sopmaker.app.guard import (
    Allow,
    Deny,
    ResourceRef,
    authorize,
    can_see_all_sops,
    enforce,
    enforce_optional,
    is_permitted,
)
from sopmaker.db.ownership import Ownership
from sopmaker.models.account import Caller
from tests._factories import AccountFactory

OWNER_ID = UUID("00000000-0000-0000-0000-0000000000a1")
OTHER_ID = UUID("00000000-0000-0000-0000-0000000000b2")
SOP_ID = UUID("00000000-0000-0000-0000-00000000050a")
STEP_ID = UUID("00000000-0000-0000-0000-00000000057e")

_OWNERSHIP = "sopmaker.app.guard.get_ownership"


def _ownership(is_published: bool = False) -> Ownership:
    return Ownership(sop_id=SOP_ID, owner_id=OWNER_ID, is_published=is_published)


def _caller(account_factory: AccountFactory, account_id: UUID, role: str = "viewer"):
    return Caller(
        account=account_factory.make({"id": account_id, "role": role}),
        provider="supabase",
    )


@pytest.fixture
def editor_flag(monkeypatch):
    def set_flag(value: str):
        monkeypatch.setenv("EDITOR_CAN_MODIFY_ANY", value)

    return set_flag


class TestIsPermitted:
    """The SOP rule applied to a resolved ownership chain."""

    def test_owner_can_modify(self):
        assert is_permitted(OWNER_ID, "viewer", _ownership(), "modify")

    def test_admin_can_modify_anything(self):
        assert is_permitted(OTHER_ID, "admin", _ownership(), "modify")

    def test_viewer_cannot_modify_others(self):
        assert not is_permitted(OTHER_ID, "viewer", _ownership(True), "modify")

    def test_published_is_readable(self):
        assert is_permitted(OTHER_ID, "viewer", _ownership(True), "read")

    def test_draft_is_not_readable(self):
        assert not is_permitted(OTHER_ID, "viewer", _ownership(False), "read")

    def test_editor_flag_on(self, editor_flag):
        editor_flag("true")
        assert is_permitted(OTHER_ID, "editor", _ownership(), "modify")

    def test_editor_flag_off(self, editor_flag):
        editor_flag("false")
        assert not is_permitted(OTHER_ID, "editor", _ownership(), "modify")
        assert is_permitted(OTHER_ID, "editor", _ownership(True), "read")

    def test_editor_flag_defaults_on(self, monkeypatch):
        monkeypatch.delenv("EDITOR_CAN_MODIFY_ANY", raising=False)
        assert is_permitted(OTHER_ID, "editor", _ownership(), "modify")


class TestAuthorize:
    """authorize() resolves the chain fresh and returns a decision."""

    @patch(_OWNERSHIP)
    def test_allow_carries_ownership(
        self, mock_ownership: MagicMock, account_factory: AccountFactory
    ):
        mock_ownership.return_value = _ownership()
        caller = _caller(account_factory, OWNER_ID)

        decision = authorize(caller, ResourceRef("step", STEP_ID), "modify")

        assert decision == Allow(_ownership())
        mock_ownership.assert_called_once_with("step", STEP_ID)

    @patch(_OWNERSHIP)
    def test_missing_chain_is_not_found(
        self, mock_ownership: MagicMock, account_factory: AccountFactory
    ):
        mock_ownership.return_value = None
        caller = _caller(account_factory, OWNER_ID)

        decision = authorize(caller, ResourceRef("media", STEP_ID), "read")

        assert decision == Deny("not_found")

    @patch(_OWNERSHIP)
    def test_non_owner_is_forbidden(
        self, mock_ownership: MagicMock, account_factory: AccountFactory
    ):
        mock_ownership.return_value = _ownership()
        caller = _caller(account_factory, OTHER_ID)

        decision = authorize(caller, ResourceRef("sop", SOP_ID), "modify")

        assert decision == Deny("forbidden")

    @patch(_OWNERSHIP)
    def test_decisions_are_not_cached(
        self, mock_ownership: MagicMock, account_factory: AccountFactory
    ):
        caller = _caller(account_factory, OTHER_ID)
        mock_ownership.return_value = _ownership(is_published=True)
        assert isinstance(authorize(caller, ResourceRef("sop", SOP_ID), "read"), Allow)

        mock_ownership.return_value = _ownership(is_published=False)
        assert authorize(caller, ResourceRef("sop", SOP_ID), "read") == Deny(
            "forbidden"
        )
        assert mock_ownership.call_count == 2


class TestEnforce:
    """enforce() turns denials into API errors."""

    @patch(_OWNERSHIP)
    def test_not_found(self, mock_ownership: MagicMock, account_factory: AccountFactory):
        mock_ownership.return_value = None
        with pytest.raises(NotFoundError) as exc_info:
            enforce(_caller(account_factory, OWNER_ID), "step", STEP_ID)
        assert exc_info.value.error == f"Step {STEP_ID} not found"

    @patch(_OWNERSHIP)
    def test_forbidden(self, mock_ownership: MagicMock, account_factory: AccountFactory):
        mock_ownership.return_value = _ownership()
        with pytest.raises(ForbiddenError) as exc_info:
            enforce(_caller(account_factory, OTHER_ID), "step", STEP_ID)
        assert exc_info.value.error == "You do not have permission to modify this step"

    @patch(_OWNERSHIP)
    def test_anonymous_draft_is_hidden(self, mock_ownership: MagicMock):
        mock_ownership.return_value = _ownership(is_published=False)
        with pytest.raises(NotFoundError):
            enforce_optional(None, "sop", SOP_ID)

    @patch(_OWNERSHIP)
    def test_anonymous_published_is_visible(self, mock_ownership: MagicMock):
        mock_ownership.return_value = _ownership(is_published=True)
        assert enforce_optional(None, "sop", SOP_ID) == _ownership(True)


class TestCanSeeAllSops:
    def test_admin(self, account_factory: AccountFactory):
        assert can_see_all_sops(_caller(account_factory, OTHER_ID, "admin"))

    def test_viewer(self, account_factory: AccountFactory):
        assert not can_see_all_sops(_caller(account_factory, OTHER_ID, "viewer"))

    def test_editor_follows_flag(self, account_factory: AccountFactory, editor_flag):
        caller = _caller(account_factory, OTHER_ID, "editor")
        editor_flag("1")
        assert can_see_all_sops(caller)
        editor_flag("0")
        assert not can_see_all_sops(caller)

"""Tests for the authorization data models."""

import pytest
from pydantic import ValidationError

from packages.authz.models import Actor, Decision, DecisionReason


class TestActor:
    """Test actor construction rules."""

    def test_factories(self):
        actor = Actor.from_identity("alice")

        assert actor.authenticated
        assert actor.identity == "alice"
        assert str(actor) == "alice"
        assert str(Actor.anonymous()) == "<anonymous>"

    @pytest.mark.parametrize("identity", [None, ""])
    def test_authenticated_requires_identity(self, identity):
        """An authenticated actor cannot be built without an identity."""
        with pytest.raises(ValidationError, match="requires an identity"):
            Actor(authenticated=True, identity=identity)

    def test_from_identity_rejects_empty(self):
        with pytest.raises(ValueError, match="requires an identity"):
            Actor.from_identity("")

    def test_anonymous_has_no_identity(self):
        """An identity without authentication is rejected."""
        with pytest.raises(ValidationError, match="cannot carry an identity"):
            Actor(authenticated=False, identity="alice")

    def test_actors_are_hashable(self):
        assert len({Actor.from_identity("alice"), Actor.from_identity("alice")}) == 1


class TestDecision:
    """Test decision values."""

    def test_decisions_are_immutable(self):
        """Cached decisions cannot be altered by a caller."""
        decision = Decision.allow(DecisionReason.DIRECT_ROLE, permission="read")

        with pytest.raises(ValidationError):
            decision.allowed = False

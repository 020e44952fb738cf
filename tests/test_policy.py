"""Tests for approval policy registration and lookup."""

import pytest

from changegate.errors.exceptions import ConfigurationError
from changegate.services.policy import (
    get_policy,
    record_key,
    register_approval,
    requires_approval,
    resolve_record_class,
    type_key,
    unregister_approval,
)

from approval_models import Membership, Note, Post


class TestRegistration:
    def test_registered_policy_is_found(self, post_policy):
        assert get_policy(Post) is post_policy
        assert get_policy(Post(title="x")) is post_policy
        assert post_policy.excluded_fields() == frozenset({"updated_at"})

    def test_unregistered_model_has_no_policy(self):
        assert get_policy(Note) is None

    def test_string_predicate_calls_method(self, post_policy):
        assert post_policy.needs_approval(Post(state="approved")) is True
        assert post_policy.needs_approval(Post(state="draft")) is False

    def test_callable_predicate(self):
        policy = register_approval(Note, when=lambda note: note.text.startswith("!"))
        assert policy.needs_approval(Note(text="!urgent")) is True
        assert policy.needs_approval(Note(text="fine")) is False

    def test_single_skip_attribute_as_string(self):
        policy = register_approval(Note, when=lambda note: True, skip_attributes="text")
        assert policy.excluded_fields() == frozenset({"text"})

    def test_decorator_registers_model(self):
        decorated = requires_approval(when=lambda note: True)(Note)
        assert decorated is Note
        assert get_policy(Note) is not None

    def test_unregister(self):
        register_approval(Note, when=lambda note: True)
        unregister_approval(Note)
        assert get_policy(Note) is None


class TestMisconfiguration:
    def test_unknown_skip_attribute(self):
        with pytest.raises(ConfigurationError) as exc_info:
            register_approval(Post, when="is_approved", skip_attributes=("published_at",))
        assert exc_info.value.details == {"unknown_attributes": ["published_at"]}

    def test_unknown_predicate_name(self):
        with pytest.raises(ConfigurationError):
            register_approval(Post, when="is_published")

    def test_predicate_must_be_callable(self):
        with pytest.raises(ConfigurationError):
            register_approval(Post, when=42)

    def test_unmapped_class(self):
        class Plain:
            def check(self):
                return True

        with pytest.raises(ConfigurationError):
            register_approval(Plain, when="check")

    def test_composite_primary_key(self):
        with pytest.raises(ConfigurationError):
            register_approval(Membership, when=lambda m: True)

    def test_failed_registration_leaves_previous_policy(self, post_policy):
        with pytest.raises(ConfigurationError):
            register_approval(Post, when="is_approved", skip_attributes=("nope",))
        assert get_policy(Post) is post_policy


class TestRecordTypes:
    def test_type_key_is_qualified(self):
        assert type_key(Post) == f"{Post.__module__}.Post"

    def test_resolve_registered_class(self):
        assert resolve_record_class(type_key(Post)) is Post
        assert resolve_record_class(type_key(Note)) is None

    @pytest.mark.asyncio
    async def test_record_key_uses_primary_key(self, post):
        assert record_key(post) == (type_key(Post), str(post.id))

    def test_record_key_requires_identity(self):
        with pytest.raises(ConfigurationError):
            record_key(Post(title="unsaved"))

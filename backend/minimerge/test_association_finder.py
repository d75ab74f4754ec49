import dataclasses
from types import SimpleNamespace

import pytest

from minimerge.association_finder import AssociationInfo, find_associations
from minimerge.example import Picture, User
from minimerge.record_merger import default_association_filter


def _fake_relationship(name, r_type, class_name, foreign_key, **options):
    return SimpleNamespace(
        name=name, r_type=r_type, class_name=class_name, foreign_key=foreign_key,
        foreign_type=options.get("foreign_type"),
        options={"through": options.get("through"), "polymorphic": options.get("polymorphic", False)},
    )


def _fake_model(*relationships):
    mapper = SimpleNamespace(reflect_on_all_associations=lambda: list(relationships))
    return SimpleNamespace(_mapper=mapper)


def test_returns_all_associations_without_filter():
    model = _fake_model(_fake_relationship("profile", "has-one", "Profile", "user_id"))

    associations = find_associations(model)

    assert len(associations) == 1
    assert associations[0].name == "profile"
    assert associations[0].type == "has-one"


def test_custom_filter_keeps_only_matching_associations():
    model = _fake_model(
        _fake_relationship("profile", "has-one", "Profile", "user_id"),
        _fake_relationship("posts", "has-many", "Post", "user_id"),
    )

    associations = find_associations(model, lambda assoc: assoc.type == "has-many")

    assert [a.name for a in associations] == ["posts"]


def test_user_associations_in_declaration_order():
    names = [a.name for a in find_associations(User)]
    assert names == ["account", "profile", "posts", "comments", "tags", "pictures"]


def test_user_association_descriptors():
    by_name = {a.name: a for a in find_associations(User)}

    assert by_name["account"] == AssociationInfo(
        name="account", type="belongs-to", related_type="Account", foreign_key="account_id")
    assert by_name["profile"] == AssociationInfo(
        name="profile", type="has-one", related_type="Profile", foreign_key="user_id")
    assert by_name["comments"].foreign_key == "author_id"

    tags = by_name["tags"]
    assert tags.through == "posts"
    assert tags.related_type == "Tag"
    assert tags.foreign_key == "post_id"

    pictures = by_name["pictures"]
    assert pictures.polymorphic is False
    assert pictures.foreign_key == "imageable_id"
    assert pictures.foreign_type == "imageable_type"


def test_polymorphic_belongs_to_descriptor():
    (imageable,) = find_associations(Picture)

    assert imageable.type == "belongs-to"
    assert imageable.polymorphic is True
    assert imageable.related_type is None
    assert imageable.foreign_key == "imageable_id"
    assert imageable.foreign_type == "imageable_type"


def test_default_merge_filter_keeps_direct_links_only():
    names = [a.name for a in find_associations(User, default_association_filter)]
    assert names == ["profile", "posts", "comments", "pictures"]


def test_association_info_is_immutable():
    info = find_associations(User)[0]
    with pytest.raises(dataclasses.FrozenInstanceError):
        info.name = "renamed"


def test_reflection_failure_propagates():
    with pytest.raises(AttributeError):
        find_associations(object)

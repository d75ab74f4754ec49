import pytest

from minimerge.association_finder import find_associations
from minimerge.base import MiniBase
from minimerge.example import Post, User
from minimerge.orm_types import Number, Relationship, Text
from minimerge.record_merger import (
    MergeError, MergeOptions, RecordMerger, ResolverMismatch, TransactionFailure,
    TypeMismatch, fill_blank_fields, merge_records,
)
from minimerge.states import ObjectState


class Writer(MiniBase):
    id = Number(pk=True)
    name = Text()
    bio = Relationship("Bio", r_type="has-one")
    articles = Relationship("Article", r_type="has-many")


class Bio(MiniBase):
    id = Number(pk=True)
    text = Text()
    writer = Relationship(Writer)


class Article(MiniBase):
    id = Number(pk=True)
    title = Text()
    writer = Relationship(Writer)


class Shelf(MiniBase):
    class Meta:
        table_name = "shelves"
    id = Number(pk=True)
    label = Text()
    books = Relationship("shelf_books", r_type="has-many")


class ShelfBook(MiniBase):
    class Meta:
        table_name = "shelf_books"
    id = Number(pk=True)
    title = Text()
    shelf = Relationship("shelves")


@pytest.fixture
def writers(session):
    first, second = Writer(name="A"), Writer(name="B")
    session.add(first)
    session.add(second)
    session.commit()
    session.add(Bio(text="about B", writer=second))
    for i in range(4):
        session.add(Article(title=f"article {i}", writer=second))
    session.commit()
    return first, second


def test_profile_and_posts_are_repointed_to_primary(session, writers, count_rows):
    primary, secondary = writers

    result = merge_records(session, primary, secondary)

    assert result.ok
    assert result.update_counts == {"bio": 1, "articles": 4}
    assert count_rows("articles", writer_id=primary.id) == 4
    assert count_rows("bios", writer_id=primary.id) == 1
    assert count_rows("articles", writer_id=secondary.id) == 0


def test_filter_restricts_which_relationships_are_repointed(session, writers, count_rows):
    primary, secondary = writers

    result = merge_records(session, primary, secondary, filter=lambda assoc: assoc.name == "articles")

    assert result.update_counts == {"articles": 4}
    assert count_rows("bios", writer_id=secondary.id) == 1


def test_default_merge_skips_belongs_to_through_and_foreign_types(session, seeded, count_rows):
    alice, bob = seeded["alice"], seeded["bob"]

    result = merge_records(session, alice, bob)

    assert result.update_counts == {"profile": 1, "posts": 3, "comments": 2, "pictures": 2}
    assert count_rows("posts", user_id=alice.id) == 5
    assert count_rows("posts", user_id=bob.id) == 0
    assert count_rows("profiles", user_id=alice.id) == 2
    assert count_rows("comments", author_id=alice.id) == 3
    assert count_rows("pictures", imageable_type="User", imageable_id=alice.id) == 3
    # same id, different owner type
    assert count_rows("pictures", imageable_type="Post", imageable_id=bob.id) == 1
    assert count_rows("users", id=bob.id) == 1
    assert bob.account_id == alice.account_id


def test_loaded_related_objects_follow_the_merge(session, seeded):
    alice, bob = seeded["alice"], seeded["bob"]

    merge_records(session, alice, bob)

    assert all(post.user is alice for post in seeded["bob_posts"])
    assert len(alice.posts) == 5
    assert bob.posts == []


def test_second_merge_of_same_pair_updates_nothing(session, seeded):
    alice, bob = seeded["alice"], seeded["bob"]

    assert merge_records(session, alice, bob).ok
    again = merge_records(session, alice, bob)

    assert again.update_counts == {"profile": 0, "posts": 0, "comments": 0, "pictures": 0}


def test_destroy_merged_record(session, seeded, count_rows):
    alice, bob = seeded["alice"], seeded["bob"]

    result = merge_records(session, alice, bob, destroy_merged_record=True)

    assert result.update_counts["destroyed"] is True
    assert result.update_counts["posts"] == 3
    assert count_rows("users", id=bob.id) == 0
    assert session.get(User, bob.id) is None
    assert bob._orm_state == ObjectState.DELETED


def test_filter_excluding_everything_reports_only_destroyed(session, seeded):
    alice = seeded["alice"]
    loner = User(name="Loner")
    session.add(loner)
    session.commit()

    assert merge_records(session, alice, loner, filter=lambda assoc: False).update_counts == {}
    result = merge_records(session, alice, loner, filter=lambda assoc: False, destroy_merged_record=True)

    assert result.update_counts == {"destroyed": True}


def test_records_of_different_types_are_rejected(session, seeded, count_rows):
    alice = seeded["alice"]
    post = seeded["alice_posts"][0]

    result = merge_records(session, alice, post, destroy_merged_record=True)

    assert not result
    assert isinstance(result.error, TypeMismatch)
    assert result.update_counts is None
    assert result.message.startswith("Failed to merge records: Records must be of the same class")
    assert count_rows("posts", id=post.id) == 1
    assert count_rows("posts", user_id=alice.id) == 2


def test_failed_deletion_rolls_back_everything(session, seeded, count_rows):
    alice, bob = seeded["alice"], seeded["bob"]

    # bob's authored comments still point at him, so deleting him breaks a foreign key
    result = merge_records(session, alice, bob, filter=lambda assoc: assoc.name == "posts",
                           destroy_merged_record=True)

    assert isinstance(result.error, TransactionFailure)
    assert "FOREIGN KEY" in result.message
    assert count_rows("users", id=bob.id) == 1
    assert count_rows("posts", user_id=bob.id) == 3
    assert count_rows("posts", user_id=alice.id) == 2
    assert bob._orm_state == ObjectState.PERSISTENT
    assert session.get(User, bob.id) is bob
    assert all(post.user_id == bob.id for post in seeded["bob_posts"])


def test_resolver_chooses_primary(session, seeded, count_rows):
    alice, bob = seeded["alice"], seeded["bob"]

    merger = RecordMerger(session, alice, bob, primary_record_resolver=lambda a, b: b)
    result = merger.call()

    assert merger.primary_record is bob
    assert merger.secondary_record is alice
    assert result.update_counts["posts"] == 2
    assert count_rows("posts", user_id=bob.id) == 5


def test_resolver_must_return_one_of_the_records(session, seeded, count_rows):
    alice, bob = seeded["alice"], seeded["bob"]
    stranger = User(name="Stranger")

    result = merge_records(session, alice, bob, primary_record_resolver=lambda a, b: stranger)

    assert isinstance(result.error, ResolverMismatch)
    assert count_rows("posts", user_id=bob.id) == 3


def test_merge_logic_changes_are_persisted(session, seeded, engine):
    alice, bob = seeded["alice"], seeded["bob"]

    result = merge_records(session, alice, bob,
                           primary_record_resolver=lambda a, b: b,
                           merge_logic=fill_blank_fields())

    assert result.ok
    row = engine.execute('SELECT "name", "email" FROM "users" WHERE "id" = ?', (bob.id,))[0]
    assert row["name"] == "Bob"
    assert row["email"] == "alice@example.com"


def test_fill_blank_fields_limited_to_given_columns(session, seeded):
    alice, bob = seeded["alice"], seeded["bob"]
    bob.name = ""
    session.commit()

    merge_records(session, bob, alice, merge_logic=fill_blank_fields(["name"]))

    assert bob.name == "Alice"
    assert bob.email is None


def test_merge_logic_failure_rolls_back(session, seeded, count_rows):
    alice, bob = seeded["alice"], seeded["bob"]
    boom = ValueError("cannot merge these names")

    def merge_logic(primary, secondary):
        primary.name = primary.name + " & " + secondary.name
        raise boom

    result = merge_records(session, alice, bob, merge_logic=merge_logic)

    assert isinstance(result.error, TransactionFailure)
    assert result.error.__cause__ is boom
    assert result.message == "Failed to merge records: cannot merge these names"
    assert alice.name == "Alice"
    assert count_rows("posts", user_id=bob.id) == 3


def test_update_logic_overrides_default_repoint(session, seeded, count_rows):
    alice, bob = seeded["alice"], seeded["bob"]
    calls = []

    def update_logic(assoc, primary, secondary):
        calls.append((assoc.name, primary, secondary))
        return 7

    result = merge_records(session, alice, bob, update_logic=update_logic)

    assert result.update_counts == {"profile": 7, "posts": 7, "comments": 7, "pictures": 7}
    assert calls[0] == ("profile", alice, bob)
    assert count_rows("posts", user_id=bob.id) == 3


def test_unsaved_and_identical_records_are_rejected(session, seeded):
    alice = seeded["alice"]

    unsaved = merge_records(session, alice, User(name="Nobody"))
    itself = merge_records(session, alice, alice)

    assert isinstance(unsaved.error, MergeError)
    assert "persisted" in unsaved.message
    assert isinstance(itself.error, MergeError)
    assert "into itself" in itself.message


def test_keyword_options_override_options_object(session, writers):
    primary, secondary = writers
    options = MergeOptions(filter=lambda assoc: False, destroy_merged_record=False)

    merger = RecordMerger(session, primary, secondary, options, filter=lambda assoc: assoc.name == "bio")

    assert merger.call().update_counts == {"bio": 1}
    assert options.destroy_merged_record is False


def test_merge_inside_outer_transaction(session, seeded, count_rows):
    alice, bob = seeded["alice"], seeded["bob"]

    with session.begin():
        session.add(User(name="Outer"))
        failed = merge_records(session, alice, seeded["alice_posts"][0])
        merged = merge_records(session, alice, bob)

    assert not failed
    assert merged.update_counts["posts"] == 3
    assert count_rows("users", name="Outer") == 1
    assert count_rows("posts", user_id=alice.id) == 5


def test_outer_rollback_undoes_nested_merge(session, seeded, count_rows):
    alice, bob = seeded["alice"], seeded["bob"]

    with pytest.raises(RuntimeError):
        with session.begin():
            assert merge_records(session, alice, bob, destroy_merged_record=True).ok
            raise RuntimeError("abort outer")

    assert count_rows("users", id=bob.id) == 1
    assert count_rows("posts", user_id=bob.id) == 3
    assert session.get(User, bob.id) is bob
    assert session.query(Post).filter(user_id=alice.id).count() == 2


def test_relationship_declared_by_table_name_is_repointed(session, count_rows):
    kept, dropped = Shelf(label="kept"), Shelf(label="dropped")
    session.add(kept)
    session.add(dropped)
    session.commit()
    session.add(ShelfBook(title="Dune", shelf=dropped))
    session.commit()

    result = merge_records(session, kept, dropped)

    assert result.ok, result.message
    assert result.update_counts == {"books": 1}
    assert count_rows("shelf_books", shelf_id=kept.id) == 1


def test_filter_none_falls_back_to_default_filter(session, seeded):
    alice, bob = seeded["alice"], seeded["bob"]

    result = merge_records(session, alice, bob, filter=None)

    assert result.ok, result.message
    assert result.update_counts == {"profile": 1, "posts": 3, "comments": 2, "pictures": 2}


def test_table_name_target_reports_class_name():
    books = {a.name: a for a in find_associations(Shelf)}["books"]
    assert books.related_type == "ShelfBook"

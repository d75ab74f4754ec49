from minimerge.base import MiniBase
from minimerge.orm_types import Text, Number, Relationship


class Account(MiniBase):
    id = Number(pk=True)
    plan = Text()
    users = Relationship("User", r_type="has-many")


class User(MiniBase):
    id = Number(pk=True)
    name = Text()
    email = Text()
    account = Relationship(Account, r_type="belongs-to")
    profile = Relationship("Profile", r_type="has-one", cascade_delete=True)
    posts = Relationship("Post", r_type="has-many", cascade_delete=True)
    comments = Relationship("Comment", r_type="has-many", foreign_key="author_id")
    tags = Relationship("Tag", r_type="has-many", through="posts")
    pictures = Relationship("Picture", r_type="has-many", as_="imageable")

    class Meta:
        table_name = "users"


class Profile(MiniBase):
    id = Number(pk=True)
    bio = Text()
    user = Relationship("User")


class Post(MiniBase):
    id = Number(pk=True)
    title = Text()
    user = Relationship(User)
    comments = Relationship("Comment", r_type="has-many", cascade_delete=True)
    tags = Relationship("Tag", r_type="has-many", cascade_delete=True)
    pictures = Relationship("Picture", r_type="has-many", as_="imageable")


class Comment(MiniBase):
    id = Number(pk=True)
    body = Text()
    author = Relationship(User, foreign_key="author_id")
    post = Relationship(Post)


class Tag(MiniBase):
    id = Number(pk=True)
    label = Text()
    post = Relationship(Post)


class Picture(MiniBase):
    id = Number(pk=True)
    url = Text()
    imageable = Relationship(polymorphic=True)


def seed_users(session):
    """Two users sharing an account, each with a profile, posts, comments and pictures.

    Alice ends up with 2 posts, 1 comment, 1 picture; Bob with 3 posts,
    2 comments, 2 pictures. One post of Alice carries a picture of its own
    whose id space overlaps with the users' ids.
    """
    account = Account(plan="team")
    alice = User(name="Alice", email="alice@example.com", account=account)
    bob = User(name="Bob", email=None, account=account)
    session.add(alice)
    session.add(bob)
    session.commit()

    session.add(Profile(bio="Alice's profile", user=alice))
    session.add(Profile(bio="Bob's profile", user=bob))

    alice_posts = [Post(title=f"Alice post {i}", user=alice) for i in range(2)]
    bob_posts = [Post(title=f"Bob post {i}", user=bob) for i in range(3)]
    for post in alice_posts + bob_posts:
        session.add(post)
    session.commit()

    session.add(Tag(label="python", post=bob_posts[0]))
    session.add(Tag(label="orm", post=alice_posts[0]))

    session.add(Comment(body="first!", author=alice, post=bob_posts[0]))
    session.add(Comment(body="nice", author=bob, post=alice_posts[0]))
    session.add(Comment(body="agreed", author=bob, post=alice_posts[1]))

    session.add(Picture(url="alice.png", imageable=alice))
    session.add(Picture(url="bob-1.png", imageable=bob))
    session.add(Picture(url="bob-2.png", imageable=bob))
    session.commit()

    # a Post picture whose imageable_id equals bob's id, only a User merge must leave it alone
    bob_id_post = session.get(Post, bob.id)
    session.add(Picture(url="post.png", imageable=bob_id_post))
    session.commit()

    return {"account": account, "alice": alice, "bob": bob,
            "alice_posts": alice_posts, "bob_posts": bob_posts}

"""
Comprehensive tests for soft delete functionality.

Tests cover the engine lifecycle, visibility scopes, restore hooks, cascading
restore and transaction atomicity against an in-memory SQLite database.
"""

import pytest
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    create_engine,
    event,
    select,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, relationship, sessionmaker

from paranoia_toolkit.config import ParanoiaConfig
from paranoia_toolkit.soft_delete import (
    HALT,
    ConfigurationError,
    FlagSoftDeleteMixin,
    HardDeleteBlocked,
    NotPersistedError,
    ParanoiaRegistry,
    RecordNotDestroyed,
    RecordNotFound,
    SoftDeletable,
    SoftDeleteEngine,
    TimestampSoftDeleteMixin,
    TransactionAborted,
    prevent_hard_delete,
)

# Create test database models
Base = declarative_base()


class Post(Base, TimestampSoftDeleteMixin):
    """Owner with cascading and non-cascading associations."""

    __tablename__ = "posts"

    id = Column(Integer, primary_key=True)
    title = Column(String(100))
    comments = relationship(
        "Comment", back_populates="post", cascade="all, delete-orphan"
    )
    attachments = relationship("Attachment", cascade="all, delete-orphan")
    likes = relationship("Like")


class Comment(Base, FlagSoftDeleteMixin):
    """Flag-marked dependent of a post."""

    __tablename__ = "comments"

    id = Column(Integer, primary_key=True)
    body = Column(String(200))
    post_id = Column(Integer, ForeignKey("posts.id"))
    post = relationship("Post", back_populates="comments")
    replies = relationship("Reply", cascade="all, delete-orphan")


class Reply(Base, TimestampSoftDeleteMixin):
    """Second level dependent."""

    __tablename__ = "replies"

    id = Column(Integer, primary_key=True)
    body = Column(String(200))
    comment_id = Column(Integer, ForeignKey("comments.id"))


class Like(Base, TimestampSoftDeleteMixin):
    """Soft deletable but not cascaded from its post."""

    __tablename__ = "likes"

    id = Column(Integer, primary_key=True)
    post_id = Column(Integer, ForeignKey("posts.id"))


class Attachment(Base):
    """Cascaded from its post but not soft deletable."""

    __tablename__ = "attachments"

    id = Column(Integer, primary_key=True)
    name = Column(String(100))
    post_id = Column(Integer, ForeignKey("posts.id"))


class Draft(Base, SoftDeletable):
    """Declares its marker through __paranoia__."""

    __tablename__ = "drafts"
    __paranoia__ = {"column": "removed", "column_type": "flag"}

    id = Column(Integer, primary_key=True)
    removed = Column(Boolean, default=False, nullable=False)
    archived_at = Column(DateTime, nullable=True)


@pytest.fixture
def db_session():
    """Create an in-memory SQLite database session for testing."""
    engine = create_engine("sqlite:///:memory:")

    # pysqlite needs explicit BEGIN for SAVEPOINT to behave
    @event.listens_for(engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)

    Session = sessionmaker(bind=engine)
    session = Session()

    yield session

    session.close()
    engine.dispose()


@pytest.fixture
def registry():
    """Registry with every soft deletable test model."""
    registry = ParanoiaRegistry(config=ParanoiaConfig())
    for model in (Post, Comment, Reply, Like):
        registry.register(model)
    return registry


@pytest.fixture
def paranoia(db_session, registry):
    """Create a soft delete engine instance."""
    return SoftDeleteEngine(db_session, registry)


@pytest.fixture
def post(db_session):
    """Create a persisted post."""
    post = Post(title="Hello")
    db_session.add(post)
    db_session.commit()
    return post


@pytest.fixture
def post_with_comments(db_session):
    """Create a post with two comments, one of which has a reply."""
    post = Post(
        title="Owner",
        comments=[
            Comment(body="First", replies=[Reply(body="Re: first")]),
            Comment(body="Second"),
        ],
    )
    db_session.add(post)
    db_session.commit()
    return post


def live_titles(session):
    return sorted(p.title for p in session.scalars(select(Post)))


def comments_of(post):
    by_body = {comment.body: comment for comment in post.comments}
    return by_body["First"], by_body["Second"]


class TestTimestampMarker:
    """Test the timestamp marker scheme end to end."""

    def test_post_scenario(self, db_session, paranoia, post):
        """Destroy hides the post; restore brings it back."""
        assert paranoia.destroy(post) is post
        db_session.commit()

        assert post.deleted_at is not None
        assert paranoia.is_deleted(post) is True
        assert db_session.scalars(select(Post)).all() == []
        assert db_session.scalars(paranoia.only_deleted(Post)).all() == [post]

        assert paranoia.restore(post) is post
        db_session.commit()

        assert post.deleted_at is None
        assert paranoia.is_deleted(post) is False
        assert db_session.scalars(select(Post)).all() == [post]

    def test_delete_visibility(self, db_session, paranoia, post):
        """Deleted posts appear only in with_deleted and only_deleted."""
        paranoia.delete(post)

        assert paranoia.is_deleted(post)
        assert db_session.scalars(paranoia.query(Post)).all() == []
        assert db_session.scalars(paranoia.only_deleted(Post)).all() == [post]
        assert db_session.scalars(paranoia.with_deleted(Post)).all() == [post]

    def test_round_trip_restores_null(self, db_session, paranoia, post):
        """Delete then restore leaves the marker at NULL."""
        paranoia.delete(post)
        db_session.commit()
        paranoia.restore(post)
        db_session.commit()

        db_session.expire_all()
        assert post.deleted_at is None

    def test_redelete_keeps_original_time(self, db_session, paranoia, post):
        """Destroying a deleted record keeps its deletion time."""
        paranoia.destroy(post)
        first = post.deleted_at

        assert paranoia.destroy(post) is post
        assert post.deleted_at == first

    def test_get_hides_deleted_rows(self, db_session, paranoia, post):
        """Primary key lookups go through the default scope."""
        post_id = post.id
        paranoia.delete(post)
        db_session.commit()
        db_session.expunge_all()

        assert db_session.get(Post, post_id) is None
        found = db_session.scalars(paranoia.with_deleted(Post, Post.id == post_id))
        assert found.one().title == "Hello"

    def test_get_returns_identity_mapped_record(self, db_session, paranoia, post):
        """Session.get() answers from the identity map without filtering."""
        paranoia.delete(post)

        assert db_session.get(Post, post.id) is post


class TestFlagMarker:
    """Test the boolean marker scheme end to end."""

    def test_delete_and_restore(self, db_session, paranoia):
        comment = Comment(body="Standalone")
        db_session.add(comment)
        db_session.commit()

        paranoia.destroy(comment)
        db_session.commit()

        assert comment.is_deleted is True
        assert db_session.scalars(select(Comment)).all() == []
        assert db_session.scalars(paranoia.only_deleted(Comment)).all() == [comment]
        assert db_session.scalars(paranoia.with_deleted(Comment)).all() == [comment]

        paranoia.restore(comment)
        db_session.commit()

        assert comment.is_deleted is False
        assert db_session.scalars(select(Comment)).all() == [comment]

    def test_declared_options(self, db_session, paranoia, registry):
        """A type's __paranoia__ picks the column and scheme."""
        type_config = registry.register(Draft)
        assert type_config.column == "removed"
        assert type_config.column_type.value == "boolean"

        draft = Draft()
        db_session.add(draft)
        db_session.commit()

        paranoia.delete(draft)
        assert draft.removed is True
        assert db_session.scalars(select(Draft)).all() == []


class TestLifecycle:
    """Test lifecycle edge cases."""

    def test_restore_twice(self, db_session, paranoia, registry, post):
        """Restoring a live record succeeds and still runs hooks."""
        restores = []

        @registry.after_restore(Post)
        def count(context):
            restores.append(context.record)

        paranoia.delete(post)
        assert paranoia.restore(post) is post
        assert paranoia.restore(post) is post

        assert paranoia.is_deleted(post) is False
        assert restores == [post, post]

    def test_not_persisted(self, db_session, paranoia):
        """Records without identity cannot be deleted or restored."""
        transient = Post(title="Never saved")
        with pytest.raises(NotPersistedError):
            paranoia.delete(transient)

        pending = Post(title="Added only")
        db_session.add(pending)
        with pytest.raises(NotPersistedError):
            paranoia.destroy(pending)
        with pytest.raises(NotPersistedError):
            paranoia.restore(pending)

    def test_unregistered_type(self, db_session, paranoia):
        attachment = Attachment(name="file.txt")
        db_session.add(attachment)
        db_session.commit()

        assert paranoia.is_paranoid(attachment) is False
        assert paranoia.is_paranoid(Post) is True
        with pytest.raises(ConfigurationError):
            paranoia.destroy(attachment)

    def test_marker_writes_not_retained(self, db_session, paranoia, post):
        """Repeated delete and restore cycles leave nothing tracked."""
        for _ in range(3):
            paranoia.delete(post)
            paranoia.restore(post)
            db_session.commit()

        assert paranoia._touched == []

    def test_soft_delete_transactional(self, db_session, paranoia, post):
        paranoia.soft_delete(post, use_transaction=True)
        db_session.commit()

        assert paranoia.is_deleted(post)
        assert live_titles(db_session) == []

    def test_scope_composes_with_criteria(self, db_session, paranoia):
        first, second = Post(title="a"), Post(title="b")
        db_session.add_all([first, second])
        db_session.commit()

        paranoia.delete(first)
        paranoia.delete(second)

        deleted_b = db_session.scalars(
            paranoia.only_deleted(Post, Post.title == "b")
        ).all()
        assert deleted_b == [second]
        assert db_session.scalars(paranoia.query(Post, Post.title == "b")).all() == []


class TestRestoreHooks:
    """Test before/around/after hooks on restore."""

    def test_hook_order(self, db_session, paranoia, registry, post):
        calls = []

        @registry.before_restore(Post)
        def before(context):
            calls.append(("before", paranoia.is_deleted(context.record)))

        @registry.around_restore(Post)
        def around(context, proceed):
            calls.append("around:enter")
            result = proceed()
            calls.append(("around:exit", paranoia.is_deleted(context.record)))
            return result

        @registry.after_restore(Post)
        def after(context):
            calls.append(("after", context.cascade))

        paranoia.delete(post)
        paranoia.restore(post, cascade=False)

        assert calls == [
            ("before", True),
            "around:enter",
            ("around:exit", False),
            ("after", False),
        ]

    def test_before_halt_skips_everything(self, db_session, paranoia, registry, post):
        calls = []

        @registry.before_restore(Post)
        def veto(context):
            calls.append("before")
            return HALT

        @registry.around_restore(Post)
        def around(context, proceed):
            calls.append("around")
            return proceed()

        @registry.after_restore(Post)
        def after(context):
            calls.append("after")

        paranoia.destroy(post)
        db_session.commit()

        assert paranoia.restore(post) is False
        assert calls == ["before"]
        assert paranoia.is_deleted(post)
        assert live_titles(db_session) == []

    def test_around_without_proceed_halts(self, db_session, paranoia, registry, post):
        @registry.around_restore(Post)
        def swallow(context, proceed):
            return None

        paranoia.destroy(post)
        db_session.commit()

        assert paranoia.restore(post) is False
        assert paranoia.is_deleted(post)

    def test_engine_registration_shortcuts(self, db_session, paranoia, post):
        seen = []
        paranoia.before_restore(Post)(lambda context: seen.append("before"))
        paranoia.after_restore(Post)(lambda context: seen.append("after"))

        paranoia.delete(post)
        paranoia.restore(post)
        assert seen == ["before", "after"]


@pytest.mark.cascade
class TestCascade:
    """Test cascading destroy and restore."""

    def test_destroy_marks_dependents(self, db_session, paranoia, post_with_comments):
        post = post_with_comments
        first, second = comments_of(post)
        reply = first.replies[0]

        paranoia.destroy(post)
        db_session.commit()

        for record in (post, first, second, reply):
            assert paranoia.is_deleted(record)
        assert db_session.scalars(select(Comment)).all() == []

    def test_restore_with_cascade(self, db_session, paranoia, post_with_comments):
        post = post_with_comments
        first, second = comments_of(post)
        reply = first.replies[0]

        paranoia.destroy(post)
        db_session.commit()
        paranoia.restore(post, cascade=True)
        db_session.commit()

        for record in (post, first, second, reply):
            assert not paranoia.is_deleted(record)
        assert set(db_session.scalars(select(Comment))) == {first, second}

    def test_restore_without_cascade(self, db_session, paranoia, post_with_comments):
        post = post_with_comments
        first, second = comments_of(post)

        paranoia.destroy(post)
        db_session.commit()
        paranoia.restore(post, cascade=False)
        db_session.commit()

        assert not paranoia.is_deleted(post)
        assert set(db_session.scalars(paranoia.only_deleted(Comment))) == {
            first,
            second,
        }

    def test_cascade_default_from_config(
        self, db_session, registry, post_with_comments
    ):
        paranoia = SoftDeleteEngine(
            db_session, registry, config=ParanoiaConfig(cascade_restore=True)
        )
        post = post_with_comments

        paranoia.destroy(post)
        paranoia.restore(post)

        assert sorted(c.body for c in post.comments) == ["First", "Second"]

    def test_non_cascading_association_untouched(self, db_session, paranoia, post):
        like = Like(post_id=post.id)
        db_session.add(like)
        db_session.commit()

        paranoia.destroy(post)
        db_session.commit()
        assert not paranoia.is_deleted(like)

        paranoia.delete(like)
        paranoia.restore(post, cascade=True)
        assert paranoia.is_deleted(like)

    def test_non_paranoid_dependents_are_hard_deleted(self, db_session, paranoia, post):
        post.attachments.append(Attachment(name="spec.pdf"))
        db_session.commit()

        paranoia.destroy(post)
        db_session.commit()

        assert db_session.scalars(select(Attachment)).all() == []

    def test_dependent_failure_rolls_back_owner(
        self, db_session, paranoia, registry, post_with_comments
    ):
        """A failing dependent restore leaves the owner deleted."""
        post = post_with_comments

        @registry.before_restore(Comment)
        def explode(context):
            raise RuntimeError("comment store offline")

        paranoia.destroy(post)
        db_session.commit()

        with pytest.raises(RuntimeError, match="comment store offline"):
            paranoia.restore(post, cascade=True)

        assert paranoia.is_deleted(post)
        assert live_titles(db_session) == []
        assert db_session.scalars(select(Reply)).all() == []

    def test_dependent_halt_rolls_back_owner(
        self, db_session, paranoia, registry, post_with_comments
    ):
        post = post_with_comments

        @registry.before_restore(Reply)
        def veto(context):
            return HALT

        paranoia.destroy(post)
        db_session.commit()

        assert paranoia.restore(post, cascade=True) is False
        assert paranoia.is_deleted(post)
        assert db_session.scalars(select(Comment)).all() == []

    def test_store_failure_raises_transaction_aborted(
        self, db_session, paranoia, registry, post_with_comments
    ):
        post = post_with_comments

        @registry.after_restore(Comment)
        def store_down(context):
            raise SQLAlchemyError("connection lost")

        paranoia.destroy(post)
        db_session.commit()

        with pytest.raises(TransactionAborted) as exc:
            paranoia.restore(post, cascade=True)

        assert isinstance(exc.value.__cause__, SQLAlchemyError)
        assert paranoia.is_deleted(post)


class TestRelationshipVisibility:
    """Relationship loads follow the default scope."""

    def test_loaded_owner_hides_deleted_dependents(
        self, db_session, paranoia, post_with_comments
    ):
        post = post_with_comments
        first, _ = comments_of(post)

        paranoia.delete(first)
        db_session.commit()

        assert [c.body for c in post.comments] == ["Second"]

    def test_selected_owner_hides_deleted_dependents(
        self, db_session, paranoia, post_with_comments
    ):
        first, _ = comments_of(post_with_comments)
        paranoia.delete(first)
        db_session.commit()
        db_session.expunge_all()

        owner = db_session.scalars(select(Post)).one()
        assert [c.body for c in owner.comments] == ["Second"]

    def test_hard_destroy_removes_deleted_dependents(
        self, db_session, paranoia, post_with_comments
    ):
        first, _ = comments_of(post_with_comments)
        paranoia.delete(first)
        db_session.commit()

        paranoia.hard_destroy(post_with_comments)
        db_session.commit()

        assert db_session.scalars(paranoia.with_deleted(Comment)).all() == []
        assert db_session.scalars(paranoia.with_deleted(Reply)).all() == []


class TestDestroyHooks:
    """Test destroy hooks and the strict variant."""

    def test_halt_returns_false(self, db_session, paranoia, registry, post):
        @registry.before_destroy(Post)
        def keep(context):
            return HALT

        assert paranoia.destroy(post) is False
        assert not paranoia.is_deleted(post)

    def test_strict_raises(self, db_session, paranoia, registry, post):
        registry.before_destroy(Post)(lambda context: HALT)

        with pytest.raises(RecordNotDestroyed) as exc:
            paranoia.destroy(post, strict=True)

        assert exc.value.entity_id == str(post.id)
        assert live_titles(db_session) == ["Hello"]

    def test_dependent_halt_keeps_owner(
        self, db_session, paranoia, registry, post_with_comments
    ):
        post = post_with_comments
        registry.before_destroy(Comment)(lambda context: HALT)

        assert paranoia.destroy(post) is False
        assert not paranoia.is_deleted(post)
        assert len(db_session.scalars(select(Comment)).all()) == 2


class TestRestoreById:
    """Test restoring by identity."""

    def test_restore_by_id(self, db_session, paranoia, post):
        paranoia.delete(post)
        db_session.commit()

        restored = paranoia.restore_by_id(Post, post.id)
        assert restored is post
        assert not paranoia.is_deleted(post)

    def test_live_record_not_found(self, db_session, paranoia, post):
        with pytest.raises(RecordNotFound) as exc:
            paranoia.restore_by_id(Post, post.id)
        assert exc.value.entity_id == str(post.id)

    def test_list_of_ids(self, db_session, paranoia):
        posts = [Post(title="a"), Post(title="b")]
        db_session.add_all(posts)
        db_session.commit()
        for record in posts:
            paranoia.delete(record)

        restored = paranoia.restore_by_id(Post, [p.id for p in posts])
        assert restored == posts
        assert live_titles(db_session) == ["a", "b"]

    def test_restore_each_reports_missing(self, db_session, paranoia, registry):
        posts = [Post(title="a"), Post(title="b"), Post(title="c")]
        db_session.add_all(posts)
        db_session.commit()
        for record in posts:
            paranoia.delete(record)

        @registry.before_restore(Post)
        def veto_c(context):
            if context.record.title == "c":
                return HALT

        report = paranoia.restore_each_by_id(
            Post, [posts[0].id, 9999, posts[1].id, posts[2].id]
        )

        assert report.restored == [posts[0], posts[1]]
        assert report.missing == [9999]
        assert report.halted == [posts[2].id]
        assert report.total == 4
        assert report.complete is False


class TestHardDestroy:
    """Test permanent deletion and the hard delete guard."""

    @pytest.fixture
    def guarded(self, db_session, registry):
        paranoia = SoftDeleteEngine(
            db_session, registry, config=ParanoiaConfig(guard_hard_delete=True)
        )
        yield paranoia
        for model in registry.types():
            event.remove(model, "before_delete", prevent_hard_delete)

    def test_hard_destroy(self, db_session, paranoia, post):
        post_id = post.id
        paranoia.hard_destroy(post)
        db_session.commit()

        remaining = db_session.scalars(paranoia.with_deleted(Post, Post.id == post_id))
        assert remaining.all() == []

    def test_guard_blocks_session_delete(self, db_session, guarded, post):
        db_session.delete(post)
        with pytest.raises(HardDeleteBlocked):
            db_session.flush()
        db_session.rollback()

        guarded.hard_destroy(post)
        db_session.commit()
        assert db_session.scalars(guarded.with_deleted(Post)).all() == []


class TestRegistry:
    """Test per-type configuration."""

    def test_requires_soft_deletable(self):
        with pytest.raises(ConfigurationError) as exc:
            ParanoiaRegistry(config=ParanoiaConfig()).register(Attachment)
        assert "SoftDeletable" in str(exc.value)

    def test_unknown_column_type(self):
        registry = ParanoiaRegistry(config=ParanoiaConfig())
        with pytest.raises(ConfigurationError) as exc:
            registry.register(Post, column_type="epoch")
        assert "invalid paranoia column type" in str(exc.value)
        assert Post not in registry

    def test_missing_column(self):
        registry = ParanoiaRegistry(config=ParanoiaConfig())
        with pytest.raises(ConfigurationError):
            registry.register(Post, column="removed_at")

    def test_incompatible_column(self):
        registry = ParanoiaRegistry(config=ParanoiaConfig())
        with pytest.raises(ConfigurationError):
            registry.register(Post, column="title")
        with pytest.raises(ConfigurationError):
            registry.register(Draft, column="archived_at", column_type="boolean")

    def test_scheme_fixed_per_type(self, registry):
        assert registry.register(Post) is registry.lookup(Post)
        with pytest.raises(ConfigurationError):
            registry.register(Post, column_type="boolean")

    def test_decorator_and_aliases(self):
        registry = ParanoiaRegistry(config=ParanoiaConfig())
        registry.paranoid(column="archived_at", column_type="datetime")(Draft)

        type_config = registry.lookup(Draft)
        assert type_config.column == "archived_at"
        assert type_config.column_type.value == "timestamp"

    def test_associations(self, registry):
        edges = {edge.name: edge for edge in registry.associations(Post)}

        assert edges["comments"].cascades
        assert edges["comments"].dependent_type is Comment
        assert edges["attachments"].cascades
        assert not edges["likes"].cascades

    def test_unknown_phase(self, registry):
        with pytest.raises(ConfigurationError):
            registry.add_hook(Post, "publish", "before", lambda context: None)

"""Shared fixtures: throwaway SQLite databases and inspectors over them."""

from collections.abc import Callable, Generator
from pathlib import Path
from sqlite3 import connect
from tempfile import NamedTemporaryFile

import pytest
from sqlalchemy import Engine, create_engine

from relgraph.config import Settings, load_settings
from relgraph.context import AnalysisContext
from relgraph.inspection import SchemaInspector

type DatabaseFactory = Callable[[str], Path]
type InspectorFactory = Callable[[str], SchemaInspector]

# Users own posts and a profile, hold roles through role_user, and comments
# point at posts or videos through a commentable_type/commentable_id pair.
BLOG_SCHEMA = r"""
CREATE TABLE users (
    id INTEGER PRIMARY KEY,
    name TEXT NOT NULL,
    deleted_at TEXT
);

CREATE TABLE profiles (
    id INTEGER PRIMARY KEY,
    user_id INTEGER NOT NULL,
    bio TEXT,
    UNIQUE (user_id),
    FOREIGN KEY (user_id) REFERENCES users (id) ON DELETE CASCADE
);

CREATE TABLE posts (
    id INTEGER PRIMARY KEY,
    user_id INTEGER NOT NULL,
    title TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'draft',
    FOREIGN KEY (user_id) REFERENCES users (id) ON DELETE CASCADE ON UPDATE CASCADE
);

CREATE TABLE videos (
    id INTEGER PRIMARY KEY,
    title TEXT NOT NULL
);

CREATE TABLE comments (
    id INTEGER PRIMARY KEY,
    commentable_type TEXT NOT NULL,
    commentable_id INTEGER NOT NULL,
    body TEXT
);

CREATE TABLE roles (
    id INTEGER PRIMARY KEY,
    name TEXT NOT NULL
);

CREATE TABLE role_user (
    role_id INTEGER NOT NULL,
    user_id INTEGER NOT NULL,
    granted_by TEXT,
    created_at TEXT,
    updated_at TEXT,
    PRIMARY KEY (role_id, user_id),
    FOREIGN KEY (role_id) REFERENCES roles (id) ON DELETE CASCADE,
    FOREIGN KEY (user_id) REFERENCES users (id) ON DELETE CASCADE
);

CREATE TABLE migrations (
    id INTEGER PRIMARY KEY,
    migration TEXT NOT NULL
);

INSERT INTO users (id, name) VALUES (1, 'Alice');
INSERT INTO posts (id, user_id, title) VALUES (1, 1, 'Hello');
INSERT INTO videos (id, title) VALUES (1, 'Intro');
INSERT INTO comments (commentable_type, commentable_id, body) VALUES
    ('App\Models\Post', 1, 'Nice post'),
    ('App\Models\Video', 1, 'Nice video');
"""


@pytest.fixture(name="make_database")
def database_factory() -> Generator[DatabaseFactory]:
    """Create temporary SQLite database files from SQL scripts."""
    created: list[Path] = []

    def make(script: str) -> Path:
        with NamedTemporaryFile(suffix=".sqlite", delete=False) as tmp:
            db_path = Path(tmp.name)
        conn = connect(db_path)
        conn.executescript(script)
        conn.commit()
        conn.close()
        created.append(db_path)
        return db_path

    yield make

    # Cleanup
    for db_path in created:
        db_path.unlink(missing_ok=True)


@pytest.fixture(name="make_inspector")
def inspector_factory(make_database: DatabaseFactory) -> Generator[InspectorFactory]:
    """Create schema inspectors over temporary SQLite databases."""
    engines: list[Engine] = []

    def make(script: str) -> SchemaInspector:
        engine = create_engine(f"sqlite:///{make_database(script)}")
        engines.append(engine)
        return SchemaInspector(engine)

    yield make

    for engine in engines:
        engine.dispose()


@pytest.fixture(name="blog_path")
def create_blog_path(make_database: DatabaseFactory) -> Path:
    """Create the blog database file."""
    return make_database(BLOG_SCHEMA)


@pytest.fixture(name="blog")
def create_blog(make_inspector: InspectorFactory) -> SchemaInspector:
    """Create an inspector over the blog database."""
    return make_inspector(BLOG_SCHEMA)


@pytest.fixture(name="settings")
def create_settings() -> Settings:
    """Load the packaged default settings."""
    return load_settings()


@pytest.fixture(name="blog_context")
def create_blog_context(blog: SchemaInspector, settings: Settings) -> AnalysisContext:
    """Create an analysis context over the blog database."""
    return AnalysisContext.create(blog, settings)

"""Demo schema used by scripts/generate_seed.py and the integration tests."""

from handlr.database.migrations import Migration


class CreateAuthorsAndPosts(Migration):
    def up(self) -> None:
        if not self._table_exists("authors"):
            self._exec(
                """
                CREATE TABLE authors (
                    id BYTEA PRIMARY KEY,
                    name TEXT NOT NULL,
                    email TEXT NOT NULL,
                    active BOOLEAN NOT NULL DEFAULT TRUE,
                    created_at TIMESTAMPTZ NOT NULL DEFAULT now()
                )
                """
            )
        if not self._table_exists("posts"):
            self._exec(
                """
                CREATE TABLE posts (
                    id BIGSERIAL PRIMARY KEY,
                    author_id BYTEA NOT NULL REFERENCES authors (id) ON DELETE CASCADE,
                    title TEXT NOT NULL,
                    views INTEGER NOT NULL DEFAULT 0,
                    score NUMERIC(6, 2)
                )
                """
            )
        if not self._index_exists("posts", "idx_posts_author_id"):
            self._exec("CREATE INDEX idx_posts_author_id ON posts (author_id)")

    def down(self) -> None:
        self._exec("DROP TABLE IF EXISTS posts")
        self._exec("DROP TABLE IF EXISTS authors")

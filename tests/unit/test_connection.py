"""
Unit tests for database connection management.
"""

from sqlalchemy import text

from genqueue.db import close_db, connection, get_engine, init_db


class TestInitDb:
    """Tests for init_db and close_db."""

    async def test_returns_factory_bound_to_engine(self, test_settings):
        """Test that the returned factory opens sessions on the shared engine."""
        session_factory = await init_db(test_settings)
        try:
            assert session_factory.kw["bind"] is get_engine()
            async with session_factory() as session:
                assert (await session.execute(text("SELECT 1"))).scalar() == 1
        finally:
            await close_db()

        assert connection._engine is None

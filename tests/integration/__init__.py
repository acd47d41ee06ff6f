"""Integration tests against a real PostgreSQL database.

These exercise the asyncpg store directly and through the HTTP API:
- Unique-constraint enforcement under concurrent votes
- Transactional tally updates, resets and removals
- Schema creation and seeding

All tests require TEST_DATABASE_URL and are skipped without it. The tables
in that database are truncated between tests.
"""

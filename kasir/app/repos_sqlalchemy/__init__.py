"""SQLAlchemy-backed repository helpers.

Every helper takes an ``AsyncSession`` as its first argument. Helpers that
only stage changes leave committing to the caller; the docstring says so
where a helper commits itself.
"""

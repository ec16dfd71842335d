"""Database layer for the bookkeeping kernel."""

"""Bulk spreadsheet import validator.

Rows read from a sheet are formatted and checked field by field, checked for
in-sheet duplicates, cross-checked against the database with batched queries
and only then handed to the persistence step.
"""

__version__ = "0.1.0"

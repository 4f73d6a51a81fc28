"""
Time-windowed relational table archiver.

Walks a registry of tables, dumps each table's archive window to
re-insertable SQL artifacts, optionally deletes the archived rows and
restores the artifacts into another database, and ships the artifact
tree to S3.
"""

__version__ = "0.1.0"

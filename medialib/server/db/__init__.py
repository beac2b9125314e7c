"""Database access for the media metadata index."""

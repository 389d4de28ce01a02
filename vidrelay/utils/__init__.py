from .filename import display_name, sanitize_filename, strip_directories, unique_prefix

__all__ = ["display_name", "sanitize_filename", "strip_directories", "unique_prefix"]

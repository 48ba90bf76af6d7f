"""Replace or extract the body of nginx proxy cache files."""
from .pipeline import ExtractReport, RewriteReport, extract_body, replace_body, rewrite_record

__all__ = ["ExtractReport", "RewriteReport", "extract_body", "replace_body", "rewrite_record"]

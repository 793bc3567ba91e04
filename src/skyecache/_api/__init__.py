"""Upstream endpoint definitions: paths, query builders and response parsers."""

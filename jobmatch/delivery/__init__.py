"""Digest and HTTP delivery of matches."""

"""Migration executor and its coordination lock."""

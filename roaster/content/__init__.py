"""Roast corpora: newline-delimited roast lines, one file per tier."""

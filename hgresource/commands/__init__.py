"""Command line handlers for hgresource: check, in and out."""

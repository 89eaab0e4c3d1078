"""Concrete archive backends.  Each one may need an optional extra installed."""

"""pizza store: ordering, profiles and role-gated administration over sqlite"""

__version__ = "1.0.0"

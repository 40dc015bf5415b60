"""
tsstore - on-demand store of TypeScript compiler versions.

Resolves tags such as 'latest' or '5.4' to concrete versions using registry
metadata and installs missing versions into a shared on-disk store.
"""

__version__ = "0.1.0"

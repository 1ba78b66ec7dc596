"""
nixstrap: bootstrap and teardown for a nix-darwin / home-manager / Homebrew macOS setup.
"""

__version__ = "0.1.0"

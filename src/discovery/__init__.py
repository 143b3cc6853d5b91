"""Test discovery and bundling."""

from .bundler import TestBundler
from .finder import BUNDLE_FILENAME, TestFinder

__all__ = ["BUNDLE_FILENAME", "TestBundler", "TestFinder"]

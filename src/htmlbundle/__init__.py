"""
htmlbundle: HTML-rooted asset bundler

Takes HTML documents as build entrypoints, discovers every local file they
reference, compiles scripts and stylesheets, gives each output a stable
content-derived name and rewrites the documents to point at the results
(or inlines them).
"""

from typing import List

from .core.config import BuildConfig, HTMLOptions, InlineOptions, MinifyOptions
from .core.controller import BuildResult, BundleController
from .core.diagnostics import HTMLParseError
from .core.naming import NamingTemplates

__version__ = "0.1.0"
__author__ = "htmlbundle Project"
__description__ = "HTML-rooted asset bundler"

__all__ = [
    'BuildConfig',
    'BuildResult',
    'BundleController',
    'HTMLOptions',
    'HTMLParseError',
    'InlineOptions',
    'MinifyOptions',
    'NamingTemplates',
    'build',
]


def build(entrypoints: List[str], **options) -> BuildResult:
    """
    Build a set of HTML entrypoints.

    Keyword arguments are BuildConfig fields; ``html`` may be a dict of
    HTMLOptions fields.
    """
    return BundleController(BuildConfig(entrypoints=list(entrypoints), **options)).run()

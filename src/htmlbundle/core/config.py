"""
Build configuration.

Plain dataclasses describing one build: BuildConfig holds what a bundler
caller passes (entrypoints, output directory, global minify / sourcemap /
splitting flags, naming), HTMLOptions holds the HTML-specific behaviour.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

from .naming import NamingTemplates
from ..utils.paths import normalize_extensions


DEFAULT_BUILD_EXTENSIONS = ('.js', '.jsx', '.ts', '.tsx')
DEFAULT_EXCLUDED_SELECTORS = ('a',)
STYLE_EXTENSIONS = ('.css', '.scss', '.sass')
SASS_EXTENSIONS = ('.scss', '.sass')
SOURCEMAP_MODES = ('none', 'inline', 'external', 'linked')


@dataclass
class InlineOptions:
    css: bool = False
    js: bool = False

    @classmethod
    def from_value(cls, value: Any) -> 'InlineOptions':
        """Accept ``False``/``None``, ``True``, ``{'css': .., 'js': ..}`` or an InlineOptions."""
        if isinstance(value, InlineOptions):
            return value
        if value is None or value is False:
            return cls()
        if value is True:
            return cls(css=True, js=True)
        if isinstance(value, dict):
            unknown = set(value) - {'css', 'js'}
            if unknown:
                raise ValueError(f"Unknown inline option(s): {', '.join(sorted(unknown))}")
            return cls(css=bool(value.get('css', False)), js=bool(value.get('js', False)))
        raise ValueError(f"Invalid inline option: {value!r}")


@dataclass
class MinifyOptions:
    minify_html: bool = True
    minify_css: bool = True

    @classmethod
    def from_value(cls, value: Any) -> 'MinifyOptions':
        if isinstance(value, MinifyOptions):
            return value
        if value is None:
            return cls()
        if isinstance(value, dict):
            return cls(
                minify_html=bool(value.get('minify_html', value.get('minifyHTML', True))),
                minify_css=bool(value.get('minify_css', value.get('minifyCSS', True))),
            )
        raise ValueError(f"Invalid minify options: {value!r}")


@dataclass
class HTMLOptions:
    inline: Any = False
    build: List[str] = field(default_factory=list)
    exclude_selectors: List[str] = field(default_factory=list)
    exclude_extensions: List[str] = field(default_factory=list)
    filter: List[str] = field(default_factory=list)  # alias of exclude_extensions
    plugins: List[Any] = field(default_factory=list)
    preprocessor: Optional[Callable[..., Any]] = None
    css_options: Dict[str, Any] = field(default_factory=dict)
    html_options: Dict[str, Any] = field(default_factory=dict)
    minify_options: Any = None
    css_minifier: Optional[Callable[..., Any]] = None
    keep_original_paths: Union[bool, List[str]] = False
    suppress_errors: bool = False

    def __post_init__(self):
        self.inline = InlineOptions.from_value(self.inline)
        self.minify_options = MinifyOptions.from_value(self.minify_options)
        overlap = set(self.build_extensions) & set(STYLE_EXTENSIONS)
        if overlap:
            raise ValueError(f"Style extensions cannot be built as scripts: {', '.join(sorted(overlap))}")

    @property
    def build_extensions(self) -> List[str]:
        extensions = list(DEFAULT_BUILD_EXTENSIONS)
        for extension in normalize_extensions(self.build):
            if extension not in extensions:
                extensions.append(extension)
        return extensions

    @property
    def excluded_selectors(self) -> List[str]:
        selectors = [s for s in self.exclude_selectors if s and s.strip()]
        for selector in DEFAULT_EXCLUDED_SELECTORS:
            if selector not in selectors:
                selectors.append(selector)
        return selectors

    @property
    def excluded_extensions(self) -> List[str]:
        return normalize_extensions(list(self.exclude_extensions) + list(self.filter))

    def keeps_original_path(self, value: str) -> bool:
        """Whether an attribute value must be left exactly as written."""
        if self.keep_original_paths is True:
            return True
        if not self.keep_original_paths:
            return False
        base = value.rsplit('/', 1)[-1]
        return value in self.keep_original_paths or base in self.keep_original_paths


@dataclass
class BuildConfig:
    entrypoints: List[str]
    outdir: str = "dist"
    minify: bool = False
    sourcemap: Any = "none"
    splitting: bool = False
    naming: Any = None
    root: Optional[str] = None
    html: HTMLOptions = field(default_factory=HTMLOptions)
    compiler: Any = None
    max_workers: int = 4

    def __post_init__(self):
        self.naming = NamingTemplates.from_value(self.naming)
        if self.sourcemap is True:
            self.sourcemap = 'linked'
        elif not self.sourcemap:
            self.sourcemap = 'none'
        if self.sourcemap not in SOURCEMAP_MODES:
            raise ValueError(f"Invalid sourcemap mode: {self.sourcemap!r}")
        if isinstance(self.html, dict):
            self.html = HTMLOptions(**self.html)
        self.max_workers = max(1, int(self.max_workers))

    @property
    def minify_css(self) -> bool:
        return self.minify and self.html.minify_options.minify_css

    @property
    def minify_html(self) -> bool:
        return self.minify and self.html.minify_options.minify_html

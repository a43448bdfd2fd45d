#!/usr/bin/env python3
"""
Focused tests for applying rewrite actions to HTML documents.
"""

import sys
from pathlib import Path

# Add the src directory to the path
src_path = Path(__file__).parent / "src"
sys.path.insert(0, str(src_path))

from htmlbundle.core.registry import Attribute
from htmlbundle.core.rewriter import (
    HTMLRewriter,
    RemoveAttribute,
    ReplaceWithLiteral,
    SetAttribute,
    SetContent,
)


PAGE = '''<html><head>
<link rel="stylesheet" href="main.css">
<script src="main.ts"></script>
</head><body>
<a href="main.css">stylesheet</a>
<img src="images/logo.png?v=2">
</body></html>'''

DOC = "/site/index.html"


def _resolve(mapping):
    return lambda key: mapping.get(key)


def test_html_rewrite_basic():
    actions = [
        SetAttribute(DOC, Attribute("href", "main.css"), target="/site/main.css"),
        SetAttribute(DOC, Attribute("src", "main.ts"), target="/site/main.ts"),
        SetAttribute(DOC, Attribute("src", "images/logo.png?v=2"), target="/site/images/logo.png", suffix="?v=2"),
    ]
    mapping = {
        "/site/main.css": "./main-1a2b3c4d.css",
        "/site/main.ts": "./main.js",
        "/site/images/logo.png": "./img/logo.png",
    }
    rewritten = HTMLRewriter().apply(PAGE, actions, _resolve(mapping))
    assert 'href="./main-1a2b3c4d.css"' in rewritten
    assert 'src="./main.js"' in rewritten
    assert 'src="./img/logo.png?v=2"' in rewritten
    # excluded anchors keep their value
    assert '<a href="main.css">' in rewritten


def test_inline_style_and_script():
    actions = [
        ReplaceWithLiteral(DOC, Attribute("href", "main.css"), tag="style", text="body{color:red}"),
        RemoveAttribute(DOC, Attribute("src", "main.ts"), name="src"),
        SetContent(DOC, Attribute("src", "main.ts"), text="console.log('\\x3C/script>')"),
    ]
    rewritten = HTMLRewriter().apply(PAGE, actions, _resolve({}))
    assert "<style>body{color:red}</style>" in rewritten
    assert 'rel="stylesheet"' not in rewritten
    assert "<script>console.log('\\x3C/script>')</script>" in rewritten


def test_actions_commute():
    actions = [
        RemoveAttribute(DOC, Attribute("src", "main.ts"), name="src"),
        SetContent(DOC, Attribute("src", "main.ts"), text="run()"),
        SetAttribute(DOC, Attribute("href", "main.css"), target="css"),
    ]
    resolve = _resolve({"css": "./main.css"})
    forward = HTMLRewriter().apply(PAGE, actions, resolve)
    backward = HTMLRewriter().apply(PAGE, list(reversed(actions)), resolve)
    assert forward == backward


def test_unresolved_target_leaves_attribute():
    actions = [SetAttribute(DOC, Attribute("src", "main.ts"), target="/site/gone.ts")]
    rewritten = HTMLRewriter().apply(PAGE, actions, _resolve({}))
    assert 'src="main.ts"' in rewritten


def test_transform_text_receives_source():
    seen = []

    def transform(source, text):
        seen.append(source)
        return text.replace("./chunk.js", "./js/chunk-abc.js")

    actions = [
        RemoveAttribute(DOC, Attribute("src", "main.ts"), name="src"),
        SetContent(DOC, Attribute("src", "main.ts"), text='import "./chunk.js"', source="/site/main.ts"),
    ]
    rewritten = HTMLRewriter().apply(PAGE, actions, _resolve({}), transform)
    assert seen == ["/site/main.ts"]
    assert '<script>import "./js/chunk-abc.js"</script>' in rewritten


if __name__ == "__main__":
    test_html_rewrite_basic()
    print("✓ rewrite tests passed")

"""
Tests for path substitution and writing outputs.
"""

import os

from htmlbundle.core.naming import ImportLink, NamingEngine, NamingTemplates
from htmlbundle.core.registry import Attribute, FileDetails, FileRegistry, KIND_CHUNK, KIND_ENTRY_POINT
from htmlbundle.core.rewriter import SetAttribute
from htmlbundle.core.writer import Writer, minify_html, substitute_paths


def test_substitute_paths_contexts():
    text = "\n".join([
        'import "./chunk.js";',
        "import('./chunk.js');",
        "background: url( ./chunk.js );",
        "//# sourceMappingURL=chunk.js",
        "// ./chunk.js mentioned in a comment",
    ])
    result = substitute_paths(text, [("./chunk.js", "./js/chunk-1.js"), ("chunk.js", "chunk-1.js")])
    assert result.splitlines() == [
        'import "./js/chunk-1.js";',
        "import('./js/chunk-1.js');",
        "background: url( ./js/chunk-1.js );",
        "//# sourceMappingURL=chunk-1.js",
        "// ./chunk.js mentioned in a comment",
    ]


def test_substitute_paths_single_pass():
    # a -> b and b -> c must not turn a into c
    assert substitute_paths('"a" "b"', [("a", "b"), ("b", "c")]) == '"b" "c"'
    assert substitute_paths('"a"', []) == '"a"'


def test_substitute_paths_keeps_query_and_fragment():
    text = '@font-face { src: url(../fonts/icon.woff?#iefix), url("../fonts/icon.woff?v=2"); }'
    result = substitute_paths(text, [("../fonts/icon.woff", "../assets/icon-1.woff")])
    assert result == '@font-face { src: url(../assets/icon-1.woff?#iefix), url("../assets/icon-1.woff?v=2"); }'


def test_minify_html_ignores_unknown_options():
    html = "<html>\n  <!-- note -->\n  <body>\n    <p>Hi</p>\n  </body>\n</html>"
    minified = minify_html(html, {"bogus": True})
    assert "note" not in minified
    assert "<p>Hi</p>" in minified


def _build(root):
    registry = FileRegistry()
    doc = str(root / "pages" / "index.html")
    os.makedirs(os.path.dirname(doc))
    with open(doc, "w", encoding="utf-8") as f:
        f.write('<script src="../main.ts"></script>')
    registry.register(doc, FileDetails(kind=KIND_ENTRY_POINT, original_path=doc))

    main = str(root / "main.ts")
    chunk = str(root / "shared-1.js")
    registry.register(main, FileDetails(kind=KIND_ENTRY_POINT, content='import "./shared-1.js";',
                                        output_path="main.js"))
    registry[main].add_reference(doc, Attribute("src", "../main.ts", element="script"))
    registry.register(chunk, FileDetails(kind=KIND_CHUNK, content="export const x = 1;",
                                         output_path="shared-1.js"))
    links = [ImportLink(main, "./shared-1.js", chunk)]
    return registry, doc, main, links


def test_emit_writes_renamed_outputs_and_fixes_links(tmp_path):
    root = tmp_path / "site"
    registry, doc, main, links = _build(root)
    engine = NamingEngine(NamingTemplates(chunk="js/[name]-[hash].[ext]"))
    assignment = engine.assign_names(registry, str(root), links)
    actions = [SetAttribute(doc, Attribute("src", "../main.ts"), target=main)]

    outdir = tmp_path / "dist"
    written = Writer(str(outdir)).emit(registry, assignment, actions)

    main_final = assignment.final_path(main)
    chunk_final = assignment.final_path(str(root / "shared-1.js"))
    assert main_final.startswith("js/main-") and chunk_final.startswith("js/shared-1-")
    assert sorted(written) == sorted(str(outdir / p) for p in ("pages/index.html", main_final, chunk_final))

    main_text = (outdir / main_final).read_text()
    assert main_text == f'import "./{os.path.basename(chunk_final)}";'
    html = (outdir / "pages" / "index.html").read_text()
    assert f'src="../{main_final}"' in html


def test_emit_minifies_html(tmp_path):
    root = tmp_path / "site"
    registry, doc, main, links = _build(root)
    registry.set_content(doc, '<html>\n  <body>\n    <!-- gone -->\n    <script src="../main.ts"></script>\n  </body>\n</html>')
    assignment = NamingEngine().assign_names(registry, str(root), links)

    Writer(str(tmp_path / "dist"), minify_html=True).emit(registry, assignment)
    html = (tmp_path / "dist" / "pages" / "index.html").read_text()
    assert "gone" not in html
    assert "\n  " not in html
